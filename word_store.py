"""
Word-list scoping for the Titanic game.

Each word lives in one of three tiers: private to its creator, shared with a
classroom, or global. Word text is stored uppercased and is unique across the
whole table, whatever its tier.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from datetime import datetime

from database import get_db, transaction
from errors import DuplicateWord, NotFound, ValidationError
from helpers import parse_bool, parse_int
from permissions import Action, ClassroomRef, WordRef, authorize

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"^[A-ZÁÉÍÓÚÑ]+$")
MIN_WORD_LENGTH = 3
DIFFICULTIES = (1, 2, 3)
ALL_CATEGORIES = ("TODAS", "ALL")

# Display precedence when a word qualifies for more than one tier
SOURCE_RANK = {"own": 0, "global": 1, "classroom": 2}

_WORD_SELECT = (
    "SELECT tw.*, u.name AS creator_name FROM titanic_words tw "
    "JOIN users u ON tw.created_by = u.id "
)


def normalize_word(raw) -> str:
    """Uppercase and validate word text."""
    word = str(raw or "").strip().upper()
    if not word:
        raise ValidationError("Word, hint and category are required")
    if len(word) < MIN_WORD_LENGTH:
        raise ValidationError(f"The word must have at least {MIN_WORD_LENGTH} letters")
    if not WORD_PATTERN.match(word):
        raise ValidationError("The word may only contain letters", {"word": word})
    return word


def _difficulty(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Difficulty must be 1, 2 or 3")
    try:
        level = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Difficulty must be 1, 2 or 3") from None
    if level not in DIFFICULTIES:
        raise ValidationError("Difficulty must be 1, 2 or 3")
    return level


def _text(value) -> str:
    return str(value or "").strip()


def _serialize(row: sqlite3.Row | dict) -> dict:
    word = dict(row)
    word["is_active"] = bool(word["is_active"])
    word["is_global"] = bool(word["is_global"])
    return word


def _visible_clause(teacher_id: int) -> tuple[str, list]:
    """Words a teacher can see: own, global, or scoped to a classroom they own."""
    return (
        "(tw.created_by = ? OR tw.is_global = 1 OR tw.classroom_id IN "
        "(SELECT id FROM classrooms WHERE teacher_id = ?))",
        [teacher_id, teacher_id],
    )


class WordStoreDB:
    """CRUD and visibility queries over titanic_words."""

    @staticmethod
    def get(word_id: int) -> dict | None:
        row = get_db().execute(_WORD_SELECT + "WHERE tw.id = ?", (word_id,)).fetchone()
        return _serialize(row) if row else None

    @staticmethod
    def _require(word_id: int) -> dict:
        word = WordStoreDB.get(word_id)
        if word is None:
            raise NotFound("Word not found", {"wordId": word_id})
        return word

    @staticmethod
    def _ref(word: dict) -> WordRef:
        return WordRef(word["id"], word["created_by"], word["classroom_id"])

    @staticmethod
    def create(actor, data: dict) -> dict:
        """Validate and insert a word in the requested tier.

        ``classroom_id`` must name a classroom the actor owns. Identical text
        anywhere in the table is rejected as a duplicate.
        """
        authorize(actor, Action.MANAGE_WORDS)
        hint, category = _text(data.get("hint")), _text(data.get("category"))
        if not data.get("word") or not hint or not category:
            raise ValidationError("Word, hint and category are required")
        word = normalize_word(data.get("word"))
        difficulty = _difficulty(data.get("difficulty"))
        classroom_id = parse_int(data.get("classroom_id"), "classroom_id", required=False)
        is_global = bool(parse_bool(data.get("is_global")))
        is_active = parse_bool(data.get("is_active"))
        if is_active is None:
            is_active = True

        with transaction() as db:
            if classroom_id is not None:
                authorize(actor, Action.MANAGE_CLASSROOM, ClassroomRef(classroom_id),
                          message="Classroom not found among your classrooms")
            if db.execute("SELECT 1 FROM titanic_words WHERE word = ?", (word,)).fetchone():
                raise DuplicateWord(word)
            now = datetime.now().isoformat()
            try:
                cur = db.execute(
                    "INSERT INTO titanic_words (word, hint, category, difficulty, is_active, "
                    "created_by, classroom_id, is_global, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (word, hint, category, difficulty, int(is_active), actor.id,
                     classroom_id, int(is_global), now, now),
                )
            except sqlite3.IntegrityError:
                raise DuplicateWord(word) from None

        logger.info("Teacher %s created word %s (%s)", actor.id, cur.lastrowid, word)
        return WordStoreDB.get(cur.lastrowid)

    @staticmethod
    def list_available(actor, classroom_id=None) -> list[dict]:
        """Active words in the actor's own, global and (optionally) classroom tiers.

        Each row carries ``source_type``; a word qualifying for several tiers
        is tagged with the first of own, global, classroom.
        """
        authorize(actor, Action.MANAGE_WORDS)
        classroom_id = parse_int(classroom_id, "classroom_id", required=False)
        if classroom_id is not None:
            authorize(actor, Action.MANAGE_CLASSROOM, ClassroomRef(classroom_id),
                      message="Classroom not found among your classrooms")

        rows = get_db().execute(
            "SELECT tw.*, u.name AS creator_name, "
            "CASE WHEN tw.created_by = ? THEN 'own' "
            "     WHEN tw.is_global = 1 THEN 'global' "
            "     ELSE 'classroom' END AS source_type "
            "FROM titanic_words tw JOIN users u ON tw.created_by = u.id "
            "WHERE tw.is_active = 1 AND ("
            "  tw.created_by = ? OR tw.is_global = 1 OR "
            "  (? IS NOT NULL AND tw.classroom_id = ?)) "
            "ORDER BY tw.created_at DESC, tw.id DESC",
            (actor.id, actor.id, classroom_id, classroom_id),
        ).fetchall()
        words = [_serialize(r) for r in rows]
        words.sort(key=lambda w: SOURCE_RANK[w["source_type"]])
        return words

    @staticmethod
    def list_active_for_game(difficulty) -> list[dict]:
        """Active words of one difficulty, shuffled, for the gameplay client."""
        level = _difficulty(difficulty)
        rows = get_db().execute(
            "SELECT word, hint, category FROM titanic_words "
            "WHERE is_active = 1 AND difficulty = ? ORDER BY RANDOM()",
            (level,),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def list_words(actor, category=None, difficulty=None, active=None, search=None) -> list[dict]:
        """Admin listing over the actor's visible words, newest first."""
        authorize(actor, Action.MANAGE_WORDS)
        clause, params = _visible_clause(actor.id)
        sql = _WORD_SELECT + "WHERE " + clause

        category = _text(category)
        if category and category.upper() not in ALL_CATEGORIES:
            sql += " AND tw.category = ?"
            params.append(category)
        if difficulty not in (None, ""):
            sql += " AND tw.difficulty = ?"
            params.append(_difficulty(difficulty))
        is_active = parse_bool(active)
        if is_active is not None:
            sql += " AND tw.is_active = ?"
            params.append(int(is_active))
        search = _text(search)
        if search:
            sql += " AND (tw.word LIKE ? OR tw.hint LIKE ?)"
            params.extend([f"%{search.upper()}%", f"%{search}%"])

        sql += " ORDER BY tw.created_at DESC, tw.id DESC"
        return [_serialize(r) for r in get_db().execute(sql, params).fetchall()]

    @staticmethod
    def stats(actor) -> dict:
        authorize(actor, Action.MANAGE_WORDS)
        clause, params = _visible_clause(actor.id)
        db = get_db()
        totals = db.execute(
            "SELECT COUNT(*) AS total, COALESCE(SUM(tw.is_active), 0) AS active "
            f"FROM titanic_words tw WHERE {clause}",
            params,
        ).fetchone()
        by_difficulty = db.execute(
            f"SELECT tw.difficulty, COUNT(*) AS n FROM titanic_words tw WHERE {clause} "
            "GROUP BY tw.difficulty ORDER BY tw.difficulty",
            params,
        ).fetchall()
        by_category = db.execute(
            f"SELECT tw.category, COUNT(*) AS n FROM titanic_words tw WHERE {clause} "
            "GROUP BY tw.category ORDER BY n DESC, tw.category",
            params,
        ).fetchall()
        return {
            "total": totals["total"],
            "active": totals["active"],
            "inactive": totals["total"] - totals["active"],
            "by_difficulty": {str(r["difficulty"]): r["n"] for r in by_difficulty},
            "by_category": {r["category"]: r["n"] for r in by_category},
        }

    @staticmethod
    def update(actor, word_id: int, data: dict) -> dict:
        """Partial update; omitted fields keep their stored value."""
        with transaction() as db:
            current = WordStoreDB._require(word_id)
            authorize(actor, Action.EDIT_WORD, WordStoreDB._ref(current))

            word = current["word"]
            if data.get("word"):
                word = normalize_word(data["word"])
                if word != current["word"] and db.execute(
                    "SELECT 1 FROM titanic_words WHERE word = ? AND id != ?", (word, word_id),
                ).fetchone():
                    raise DuplicateWord(word, f'Another word with the text "{word}" already exists')
            difficulty = current["difficulty"]
            if data.get("difficulty") not in (None, ""):
                difficulty = _difficulty(data["difficulty"])
            is_active = parse_bool(data.get("is_active"))
            if is_active is None:
                is_active = current["is_active"]

            try:
                db.execute(
                    "UPDATE titanic_words SET word = ?, hint = ?, category = ?, difficulty = ?, "
                    "is_active = ?, updated_at = ? WHERE id = ?",
                    (word, _text(data.get("hint")) or current["hint"],
                     _text(data.get("category")) or current["category"],
                     difficulty, int(is_active), datetime.now().isoformat(), word_id),
                )
            except sqlite3.IntegrityError:
                raise DuplicateWord(word) from None

        return WordStoreDB.get(word_id)

    @staticmethod
    def delete(actor, word_id: int) -> None:
        """Hard delete."""
        word = WordStoreDB._require(word_id)
        authorize(actor, Action.EDIT_WORD, WordStoreDB._ref(word))
        get_db().execute("DELETE FROM titanic_words WHERE id = ?", (word_id,))
        logger.info("Teacher %s deleted word %s (%s)", actor.id, word_id, word["word"])

    @staticmethod
    def toggle_active(actor, word_id: int) -> dict:
        with transaction() as db:
            word = WordStoreDB._require(word_id)
            authorize(actor, Action.EDIT_WORD, WordStoreDB._ref(word))
            db.execute(
                "UPDATE titanic_words SET is_active = ?, updated_at = ? WHERE id = ?",
                (int(not word["is_active"]), datetime.now().isoformat(), word_id),
            )
        return WordStoreDB.get(word_id)
