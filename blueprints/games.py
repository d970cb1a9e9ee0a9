"""Game progress and game configuration routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from game_store import GameConfigStoreDB, GameSessionLedgerDB
from helpers import current_actor, json_body, teacher_required

bp = Blueprint("games", __name__)


@bp.route("/api/games/save-progress", methods=["POST"])
def save_progress():
    session_id = GameSessionLedgerDB.record_session(current_actor(), json_body())
    return jsonify({
        "success": True,
        "message": "Progress saved successfully",
        "session_id": session_id,
    }), 201


@bp.route("/api/games/progress")
@bp.route("/api/games/progress/<int:user_id>")
def progress(user_id=None):
    actor = current_actor()
    result = GameSessionLedgerDB.progress(actor, user_id if user_id is not None else actor.id)
    return jsonify({"success": True, **result})


@bp.route("/api/games/config/<game_type>")
def game_config(game_type):
    return jsonify({"success": True, "configs": GameConfigStoreDB.list_active(game_type)})


@bp.route("/api/games/config", methods=["POST"])
@teacher_required
def create_game_config():
    data = json_body()
    config_id = GameConfigStoreDB.create(
        current_actor(),
        str(data.get("game_type", "")),
        difficulty_level=data.get("difficulty_level", 1),
        words=data.get("words"),
        hints=data.get("hints"),
    )
    return jsonify({"success": True, "config_id": config_id}), 201
