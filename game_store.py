"""
Progress ledger and game configuration.

game_sessions is append-only: one row per attempt, including placeholder
rows written when a game starts. Every statistic here is a read-time
projection over those rows; nothing is cached or updated in place.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timedelta

from flask import current_app

from config import GAME_TYPES
from database import get_db
from errors import ValidationError
from helpers import parse_bool, parse_int
from permissions import Action, ClassroomRef, UserRef, authorize

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = ("score", "total_questions", "correct_answers", "incorrect_answers", "time_spent")


def _avg(total: float, count: int) -> float:
    return round(total / count, 1) if count else 0


def _number(value):
    """Numeric ledger field as sent; missing, falsy or non-numeric values become 0."""
    if isinstance(value, int):
        return int(value)
    if not isinstance(value, float):
        try:
            value = float(str(value).strip())
        except ValueError:
            return 0
    if not math.isfinite(value):
        return 0
    return int(value) if value.is_integer() else value


def _decode(raw: str, default):
    try:
        return json.loads(raw) if raw else default
    except (json.JSONDecodeError, TypeError):
        return default


class GameSessionLedgerDB:
    """Append-only record of game attempts and the aggregates built on it."""

    @staticmethod
    def record_session(actor, fields: dict) -> int:
        authorize(actor, Action.RECORD_SESSION)
        values = {
            name: _number(fields.get(name))
            for name in NUMERIC_FIELDS
        }
        db = get_db()
        cur = db.execute(
            "INSERT INTO game_sessions (user_id, game_type, score, total_questions, correct_answers, "
            "incorrect_answers, time_spent, completed, session_data, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (actor.id, str(fields.get("game_type") or ""), values["score"],
             values["total_questions"], values["correct_answers"], values["incorrect_answers"],
             values["time_spent"], int(bool(parse_bool(fields.get("completed")))),
             json.dumps(fields.get("session_data") or {}), datetime.now().isoformat()),
        )
        return cur.lastrowid

    @staticmethod
    def sessions_for_user(user_id: int) -> list[dict]:
        rows = get_db().execute(
            "SELECT gs.*, u.name AS user_name FROM game_sessions gs "
            "JOIN users u ON gs.user_id = u.id "
            "WHERE gs.user_id = ? ORDER BY gs.created_at DESC, gs.id DESC",
            (user_id,),
        ).fetchall()
        sessions = []
        for r in rows:
            s = dict(r)
            s["completed"] = bool(s["completed"])
            s["session_data"] = _decode(s["session_data"], {})
            sessions.append(s)
        return sessions

    @staticmethod
    def aggregate_for_user(user_id: int) -> dict:
        """Totals plus a breakdown for each known game type."""
        rows = get_db().execute(
            "SELECT game_type, COUNT(*) AS sessions, SUM(completed) AS completed, "
            "SUM(score) AS total_score, MAX(score) AS best_score "
            "FROM game_sessions WHERE user_id = ? GROUP BY game_type",
            (user_id,),
        ).fetchall()
        groups = {r["game_type"]: r for r in rows}

        total_sessions = sum(r["sessions"] for r in rows)
        total_score = sum(r["total_score"] or 0 for r in rows)
        stats = {
            "total_sessions": total_sessions,
            "games_completed": sum(r["completed"] or 0 for r in rows),
            "total_score": total_score,
            "average_score": _avg(total_score, total_sessions),
            "by_game_type": {},
        }
        for game_type in GAME_TYPES:
            g = groups.get(game_type)
            if g is None:
                stats["by_game_type"][game_type] = {
                    "sessions": 0, "completed": 0, "best_score": 0, "average_score": 0,
                }
                continue
            stats["by_game_type"][game_type] = {
                "sessions": g["sessions"],
                "completed": g["completed"] or 0,
                "best_score": g["best_score"] or 0,
                "average_score": _avg(g["total_score"] or 0, g["sessions"]),
            }
        return stats

    @staticmethod
    def progress(actor, user_id: int) -> dict:
        """Sessions and stats for a user the actor may see."""
        authorize(actor, Action.VIEW_PROGRESS, UserRef(user_id))
        return {
            "progress": GameSessionLedgerDB.sessions_for_user(user_id),
            "stats": GameSessionLedgerDB.aggregate_for_user(user_id),
        }

    @staticmethod
    def aggregate_for_classroom(actor, classroom_id: int) -> list[dict]:
        """Per-student rollup for the classroom's active enrollments.

        Ordered by average score (students without sessions last), then name.
        """
        authorize(actor, Action.MANAGE_CLASSROOM, ClassroomRef(classroom_id),
                  message="You do not have permission to view this report")

        per_game = ", ".join(
            f'COUNT(CASE WHEN gs.game_type = ? THEN 1 END) AS "{game_type}_sessions"'
            for game_type in GAME_TYPES
        )
        rows = get_db().execute(
            "SELECT u.id AS student_id, u.name AS student_name, "
            "COUNT(gs.id) AS total_sessions, "
            "COUNT(CASE WHEN gs.completed = 1 THEN 1 END) AS completed_sessions, "
            "AVG(gs.score) AS average_score, "
            "COALESCE(SUM(gs.time_spent), 0) AS total_time_spent, "
            "MAX(gs.created_at) AS last_activity, "
            f"{per_game} "
            "FROM student_enrollments se "
            "JOIN users u ON se.student_id = u.id "
            "LEFT JOIN game_sessions gs ON u.id = gs.user_id "
            "WHERE se.classroom_id = ? AND se.status = 'active' "
            "GROUP BY u.id "
            "ORDER BY average_score IS NULL, average_score DESC, u.name",
            (*GAME_TYPES, classroom_id),
        ).fetchall()

        report = []
        for r in rows:
            entry = dict(r)
            if entry["average_score"] is not None:
                entry["average_score"] = round(entry["average_score"], 1)
            report.append(entry)
        return report


def teacher_dashboard(actor) -> dict:
    """Headline numbers for a teacher's home screen."""
    authorize(actor, Action.VIEW_DASHBOARD)
    db = get_db()
    days = current_app.config.get("RECENT_ACTIVITY_DAYS", 7)
    cutoff = (datetime.now() - timedelta(days=days)).isoformat()

    total_classrooms = db.execute(
        "SELECT COUNT(*) AS n FROM classrooms WHERE teacher_id = ? AND active = 1",
        (actor.id,),
    ).fetchone()["n"]
    total_students = db.execute(
        "SELECT COUNT(DISTINCT se.student_id) AS n FROM classrooms c "
        "JOIN student_enrollments se ON c.id = se.classroom_id "
        "WHERE c.teacher_id = ? AND c.active = 1 AND se.status = 'active'",
        (actor.id,),
    ).fetchone()["n"]
    recent_activity = db.execute(
        "SELECT COUNT(*) AS n FROM game_sessions gs "
        "WHERE gs.created_at >= ? AND gs.user_id IN ("
        "  SELECT se.student_id FROM student_enrollments se "
        "  JOIN classrooms c ON se.classroom_id = c.id "
        "  WHERE c.teacher_id = ? AND se.status = 'active')",
        (cutoff, actor.id),
    ).fetchone()["n"]
    words_created = db.execute(
        "SELECT COUNT(*) AS n FROM titanic_words WHERE created_by = ?", (actor.id,),
    ).fetchone()["n"]

    return {
        "total_classrooms": total_classrooms,
        "total_students": total_students,
        "recent_activity": recent_activity,
        "words_created": words_created,
    }


class GameConfigStoreDB:
    """Teacher-authored presets (word sets and hints) per game type."""

    @staticmethod
    def list_active(game_type: str) -> list[dict]:
        rows = get_db().execute(
            "SELECT gc.*, u.name AS creator_name FROM game_config gc "
            "JOIN users u ON gc.created_by = u.id "
            "WHERE gc.game_type = ? AND gc.active = 1 "
            "ORDER BY gc.difficulty_level, gc.created_at DESC",
            (game_type,),
        ).fetchall()
        configs = []
        for r in rows:
            c = dict(r)
            c["active"] = bool(c["active"])
            c["words"] = _decode(c["words"], [])
            c["hints"] = _decode(c["hints"], {})
            configs.append(c)
        return configs

    @staticmethod
    def create(actor, game_type: str, difficulty_level=1, words=None, hints=None) -> int:
        authorize(actor, Action.CONFIGURE_GAMES)
        if game_type not in GAME_TYPES:
            raise ValidationError(
                f"Unknown game type '{game_type}'", {"allowed": list(GAME_TYPES)},
            )
        level = parse_int(difficulty_level, "difficulty_level", required=False) or 1
        if level not in (1, 2, 3):
            raise ValidationError("difficulty_level must be 1, 2 or 3")
        if not isinstance(words, list) or not words or not all(isinstance(w, str) and w.strip() for w in words):
            raise ValidationError("words must be a non-empty list of strings")
        if hints is not None and not isinstance(hints, dict):
            raise ValidationError("hints must be an object keyed by word")

        cur = get_db().execute(
            "INSERT INTO game_config (game_type, difficulty_level, words, hints, active, created_by, created_at) "
            "VALUES (?, ?, ?, ?, 1, ?, ?)",
            (game_type, level, json.dumps([w.strip() for w in words]), json.dumps(hints or {}),
             actor.id, datetime.now().isoformat()),
        )
        logger.info("Teacher %s added %s config %s", actor.id, game_type, cur.lastrowid)
        return cur.lastrowid
