"""Parent <-> child links and the parent's view of their children."""

from __future__ import annotations

import logging
from datetime import datetime

from audit import log_event
from database import get_db, transaction
from errors import ValidationError
from game_store import GameSessionLedgerDB
from helpers import parse_int
from permissions import Action, Role, StudentRef, authorize

logger = logging.getLogger(__name__)

DEFAULT_RELATIONSHIP = "representative"


class RelationshipStoreDB:
    """Manage parent-child relations (one primary representative per child)."""

    @staticmethod
    def link(actor, child_id: int, parent_id, relationship_type: str | None = None,
             is_primary: bool = False, phone: str | None = None) -> dict:
        """Create or replace the (parent, child) relation.

        Only a teacher whose classroom holds the child's active enrollment may
        link parents. Setting ``is_primary`` clears the flag on the child's
        other relations first, in the same transaction.
        """
        parent_id = parse_int(parent_id, "parent_id")
        is_primary = bool(is_primary)

        with transaction() as db:
            authorize(actor, Action.MANAGE_STUDENT, StudentRef(child_id))
            parent = db.execute(
                "SELECT id, name FROM users WHERE id = ? AND role = ? AND active = 1",
                (parent_id, Role.PARENT.value),
            ).fetchone()
            if not parent:
                raise ValidationError("Parent not found", {"parentId": parent_id})

            if is_primary:
                db.execute(
                    "UPDATE parent_child_relationships SET is_primary = 0 WHERE child_id = ?",
                    (child_id,),
                )
            db.execute(
                "INSERT INTO parent_child_relationships "
                "(parent_id, child_id, relationship_type, is_primary, phone, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(parent_id, child_id) DO UPDATE SET "
                "relationship_type = excluded.relationship_type, "
                "is_primary = excluded.is_primary, phone = excluded.phone",
                (parent_id, child_id, (relationship_type or DEFAULT_RELATIONSHIP).strip(),
                 int(is_primary), (phone or "").strip(), datetime.now().isoformat()),
            )

        logger.info("Teacher %s linked parent %s to child %s (primary=%s)",
                    actor.id, parent_id, child_id, is_primary)
        log_event("parent_link", actor.id, f"parent={parent_id} child={child_id} primary={int(is_primary)}")
        return RelationshipStoreDB.get(parent_id, child_id)

    @staticmethod
    def get(parent_id: int, child_id: int) -> dict | None:
        row = get_db().execute(
            "SELECT * FROM parent_child_relationships WHERE parent_id = ? AND child_id = ?",
            (parent_id, child_id),
        ).fetchone()
        if not row:
            return None
        rel = dict(row)
        rel["is_primary"] = bool(rel["is_primary"])
        return rel

    @staticmethod
    def parents_for(actor, child_id: int) -> list[dict]:
        authorize(actor, Action.MANAGE_STUDENT, StudentRef(child_id))
        rows = get_db().execute(
            "SELECT pcr.parent_id, u.name AS parent_name, u.email AS parent_email, "
            "pcr.relationship_type, pcr.is_primary, pcr.phone "
            "FROM parent_child_relationships pcr JOIN users u ON pcr.parent_id = u.id "
            "WHERE pcr.child_id = ? ORDER BY pcr.is_primary DESC, u.name",
            (child_id,),
        ).fetchall()
        return [{**dict(r), "is_primary": bool(r["is_primary"])} for r in rows]

    @staticmethod
    def children_for(actor) -> list[dict]:
        """Linked children with current classroom (None if unenrolled) and play stats."""
        authorize(actor, Action.VIEW_CHILDREN)
        rows = get_db().execute(
            "SELECT u.id, u.name, u.email, pcr.relationship_type, pcr.is_primary, "
            "se.classroom_id, c.name AS classroom_name, c.grade_level, c.section, "
            "t.name AS teacher_name, t.email AS teacher_email, "
            "(SELECT COUNT(*) FROM game_sessions gs WHERE gs.user_id = u.id) AS total_games_played, "
            "(SELECT AVG(gs.score) FROM game_sessions gs WHERE gs.user_id = u.id) AS average_score, "
            "(SELECT MAX(gs.created_at) FROM game_sessions gs WHERE gs.user_id = u.id) AS last_activity "
            "FROM parent_child_relationships pcr "
            "JOIN users u ON pcr.child_id = u.id "
            "LEFT JOIN student_enrollments se ON u.id = se.student_id AND se.status = 'active' "
            "LEFT JOIN classrooms c ON se.classroom_id = c.id "
            "LEFT JOIN users t ON c.teacher_id = t.id "
            "WHERE pcr.parent_id = ? AND u.role = ? "
            "ORDER BY u.name",
            (actor.id, Role.CHILD.value),
        ).fetchall()

        children = []
        for r in rows:
            child = dict(r)
            child["is_primary"] = bool(child["is_primary"])
            child["stats"] = GameSessionLedgerDB.aggregate_for_user(child["id"])
            children.append(child)
        return children
