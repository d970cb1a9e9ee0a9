"""Classroom registry: creation, listing, ownership and lifecycle."""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app

from audit import log_event
from database import get_db, transaction
from errors import ClassroomNotFound, ValidationError
from helpers import parse_int
from permissions import Action, ClassroomRef, authorize

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "grade_level", "section", "school_year")


def active_enrollment_count(classroom_id: int) -> int:
    """Live count of active enrollments; the only source of truth for capacity."""
    row = get_db().execute(
        "SELECT COUNT(*) AS n FROM student_enrollments WHERE classroom_id = ? AND status = 'active'",
        (classroom_id,),
    ).fetchone()
    return row["n"]


class ClassroomStoreDB:
    """Manage classrooms owned by teachers."""

    @staticmethod
    def create(actor, name: str = "", grade_level: str = "", section: str = "",
               school_year: str = "", max_students=None) -> dict:
        authorize(actor, Action.CREATE_CLASSROOM)

        fields = {
            "name": str(name or "").strip(),
            "grade_level": str(grade_level or "").strip(),
            "section": str(section or "").strip(),
            "school_year": str(school_year or "").strip(),
        }
        missing = [f for f in REQUIRED_FIELDS if not fields[f]]
        if missing:
            raise ValidationError(
                "All fields are required: " + ", ".join(missing), {"missing": missing},
            )
        capacity = parse_int(max_students, "max_students", required=False, minimum=1)
        if capacity is None:
            capacity = current_app.config.get("DEFAULT_MAX_STUDENTS", 40)

        db = get_db()
        cur = db.execute(
            "INSERT INTO classrooms (name, teacher_id, grade_level, section, school_year, "
            "max_students, active, created_at) VALUES (?, ?, ?, ?, ?, ?, 1, ?)",
            (fields["name"], actor.id, fields["grade_level"], fields["section"],
             fields["school_year"], capacity, datetime.now().isoformat()),
        )
        logger.info("Teacher %s created classroom %s (%s)", actor.id, cur.lastrowid, fields["name"])
        return ClassroomStoreDB.get(cur.lastrowid)

    @staticmethod
    def get(classroom_id: int, active_only: bool = False) -> dict | None:
        db = get_db()
        sql = (
            "SELECT c.*, u.name AS teacher_name, u.email AS teacher_email, "
            "(SELECT COUNT(*) FROM student_enrollments se "
            " WHERE se.classroom_id = c.id AND se.status = 'active') AS student_count "
            "FROM classrooms c JOIN users u ON c.teacher_id = u.id WHERE c.id = ?"
        )
        if active_only:
            sql += " AND c.active = 1"
        row = db.execute(sql, (classroom_id,)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def require_active(classroom_id: int) -> dict:
        cls = ClassroomStoreDB.get(classroom_id, active_only=True)
        if cls is None:
            raise ClassroomNotFound(classroom_id)
        return cls

    @staticmethod
    def list_for_teacher(teacher_id: int) -> list[dict]:
        """Active classrooms of a teacher with a live ``student_count``."""
        db = get_db()
        rows = db.execute(
            "SELECT c.*, COUNT(se.id) AS student_count "
            "FROM classrooms c "
            "LEFT JOIN student_enrollments se ON c.id = se.classroom_id AND se.status = 'active' "
            "WHERE c.teacher_id = ? AND c.active = 1 "
            "GROUP BY c.id ORDER BY c.created_at DESC, c.id DESC",
            (teacher_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def deactivate(actor, classroom_id: int) -> dict:
        """Retire a classroom and release its students.

        Active enrollments become inactive in the same transaction, so the
        students can enroll elsewhere.
        """
        cls = ClassroomStoreDB.require_active(classroom_id)
        authorize(actor, Action.MANAGE_CLASSROOM, ClassroomRef(classroom_id))

        with transaction() as db:
            released = db.execute(
                "UPDATE student_enrollments SET status = 'inactive', notes = ? "
                "WHERE classroom_id = ? AND status = 'active'",
                ("Classroom deactivated", classroom_id),
            ).rowcount
            db.execute("UPDATE classrooms SET active = 0 WHERE id = ?", (classroom_id,))

        log_event("classroom_deactivate", actor.id, f"classroom={classroom_id} released={released}")
        return {"classroom_id": classroom_id, "name": cls["name"], "released_students": released}

    @staticmethod
    def roster(actor, classroom_id: int) -> list[dict]:
        """Actively enrolled students with play stats, ordered by name."""
        ClassroomStoreDB.require_active(classroom_id)
        authorize(actor, Action.VIEW_ROSTER, ClassroomRef(classroom_id))

        db = get_db()
        rows = db.execute(
            "SELECT u.id, u.name, u.email, u.created_at, "
            "se.enrollment_date, se.status, "
            "(SELECT COUNT(*) FROM game_sessions gs WHERE gs.user_id = u.id) AS total_games_played, "
            "(SELECT AVG(gs.score) FROM game_sessions gs WHERE gs.user_id = u.id) AS average_score, "
            "(SELECT MAX(gs.created_at) FROM game_sessions gs WHERE gs.user_id = u.id) AS last_activity "
            "FROM student_enrollments se JOIN users u ON se.student_id = u.id "
            "WHERE se.classroom_id = ? AND se.status = 'active' AND u.role = 'child' "
            "ORDER BY u.name",
            (classroom_id,),
        ).fetchall()
        return [dict(r) for r in rows]
