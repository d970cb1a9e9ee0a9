"""Titanic word-list routes (teacher admin plus the public gameplay feed)."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from helpers import current_actor, json_body, teacher_required
from word_store import WordStoreDB

bp = Blueprint("words", __name__)


# ── Gameplay (no auth) ─────────────────────────────────────

@bp.route("/api/titanic/words/active/<difficulty>")
def active_words(difficulty):
    return jsonify({"success": True, "words": WordStoreDB.list_active_for_game(difficulty)})


# ── Teacher admin ──────────────────────────────────────────

@bp.route("/api/titanic/words")
@teacher_required
def list_words():
    words = WordStoreDB.list_words(
        current_actor(),
        category=request.args.get("category"),
        difficulty=request.args.get("difficulty"),
        active=request.args.get("active"),
        search=request.args.get("search"),
    )
    return jsonify({"success": True, "words": words})


@bp.route("/api/titanic/stats")
@teacher_required
def word_stats():
    return jsonify({"success": True, "stats": WordStoreDB.stats(current_actor())})


@bp.route("/api/titanic/words/available")
@teacher_required
def available_words():
    words = WordStoreDB.list_available(current_actor(), request.args.get("classroom_id"))
    return jsonify({"success": True, "words": words})


@bp.route("/api/titanic/words", methods=["POST"])
@bp.route("/api/titanic/words/scoped", methods=["POST"])
@teacher_required
def create_word():
    word = WordStoreDB.create(current_actor(), json_body())
    return jsonify({
        "success": True,
        "message": "Word created successfully",
        "word": word,
        "word_id": word["id"],
    }), 201


@bp.route("/api/titanic/words/<int:word_id>", methods=["PUT"])
@teacher_required
def update_word(word_id):
    word = WordStoreDB.update(current_actor(), word_id, json_body())
    return jsonify({"success": True, "message": "Word updated successfully", "word": word})


@bp.route("/api/titanic/words/<int:word_id>", methods=["DELETE"])
@teacher_required
def delete_word(word_id):
    WordStoreDB.delete(current_actor(), word_id)
    return jsonify({"success": True, "message": "Word deleted successfully"})


@bp.route("/api/titanic/words/<int:word_id>/toggle", methods=["PATCH"])
@teacher_required
def toggle_word(word_id):
    word = WordStoreDB.toggle_active(current_actor(), word_id)
    state = "activated" if word["is_active"] else "deactivated"
    return jsonify({"success": True, "message": f"Word {state} successfully", "word": word})
