"""Core routes — health check."""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, jsonify

from database import get_storage

bp = Blueprint("core", __name__)


@bp.route("/api/health")
def health():
    storage = get_storage()
    return jsonify({
        "status": "OK",
        "message": "Spelling server is running",
        "schema_version": storage.schema_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })
