"""Teacher reports: per-classroom progress and the dashboard summary."""

from __future__ import annotations

from flask import Blueprint, jsonify

from game_store import GameSessionLedgerDB, teacher_dashboard
from helpers import current_actor, teacher_required

bp = Blueprint("reports", __name__)


@bp.route("/api/reports/classroom/<int:classroom_id>/progress")
@teacher_required
def classroom_report(classroom_id):
    report = GameSessionLedgerDB.aggregate_for_classroom(current_actor(), classroom_id)
    return jsonify({"success": True, "report": report})


@bp.route("/api/dashboard/teacher")
@teacher_required
def dashboard():
    return jsonify({"success": True, "dashboard": teacher_dashboard(current_actor())})
