"""Parent portal routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from helpers import current_actor, parent_required
from relationship_store import RelationshipStoreDB

bp = Blueprint("parents", __name__)


@bp.route("/api/parents/my-children")
@parent_required
def my_children():
    children = RelationshipStoreDB.children_for(current_actor())
    return jsonify({"success": True, "children": children})
