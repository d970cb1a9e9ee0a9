"""
Enrollment engine — the single-active-classroom rule.

A student holds at most one ``status='active'`` row in student_enrollments.
Every mutation (self-enroll, teacher enroll, transfer, unenroll) runs its
duplicate and capacity checks and its writes inside one ``transaction()``;
the partial unique index on (student_id) WHERE status='active' backs the
rule at the storage layer. Rows are never deleted, only flipped to
``inactive`` or ``transferred``.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from audit import log_event
from classroom_store import ClassroomStoreDB, active_enrollment_count
from database import get_db, transaction
from errors import AlreadyEnrolled, ClassroomFull, NotEnrolled, NotFound, ValidationError
from permissions import (
    Action,
    ClassroomRef,
    Role,
    UserRef,
    authorize,
    require_capability,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now().isoformat()


def get_student(student_id: int) -> dict | None:
    row = get_db().execute(
        "SELECT id, name, email, created_at FROM users WHERE id = ? AND role = ? AND active = 1",
        (student_id, Role.CHILD.value),
    ).fetchone()
    return dict(row) if row else None


def _require_student(student_id: int) -> dict:
    student = get_student(student_id)
    if student is None:
        raise NotFound("Student not found", {"studentId": student_id})
    return student


def _already_enrolled(current: dict, student_name: str | None = None) -> AlreadyEnrolled:
    where = f'"{current["classroom_name"]}" with {current["teacher_name"]}'
    if student_name is None:
        msg = f"You are already enrolled in {where}. You can only be in one classroom at a time."
    else:
        msg = (f"{student_name} is already enrolled in {where}. "
               "A student can only be in one classroom at a time.")
    return AlreadyEnrolled(msg, current)


def _ensure_capacity(classroom: dict, label: str = "Classroom") -> None:
    count = active_enrollment_count(classroom["id"])
    if count >= classroom["max_students"]:
        cap = classroom["max_students"]
        raise ClassroomFull(classroom, f'{label} "{classroom["name"]}" is full ({cap}/{cap})')


def _insert_active(db: sqlite3.Connection, student_id: int, classroom_id: int,
                   notes: str = "", student_name: str | None = None) -> int:
    try:
        cur = db.execute(
            "INSERT INTO student_enrollments (student_id, classroom_id, status, enrollment_date, notes) "
            "VALUES (?, ?, 'active', ?, ?)",
            (student_id, classroom_id, _now(), notes),
        )
    except sqlite3.IntegrityError:
        # Another writer won the race for this student's active slot
        current = EnrollmentStoreDB.current_enrollment(student_id)
        if current is None:
            raise
        raise _already_enrolled(current, student_name) from None
    return cur.lastrowid


class EnrollmentStoreDB:
    """State transitions for student enrollments."""

    @staticmethod
    def current_enrollment(student_id: int) -> dict | None:
        """The student's active enrollment joined with classroom and teacher."""
        row = get_db().execute(
            "SELECT se.id, se.student_id, se.classroom_id, se.status, se.enrollment_date, se.notes, "
            "c.name AS classroom_name, c.grade_level, c.section, c.school_year, c.teacher_id, "
            "t.name AS teacher_name, t.email AS teacher_email, s.name AS student_name "
            "FROM student_enrollments se "
            "JOIN classrooms c ON se.classroom_id = c.id "
            "JOIN users t ON c.teacher_id = t.id "
            "JOIN users s ON se.student_id = s.id "
            "WHERE se.student_id = ? AND se.status = 'active'",
            (student_id,),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def history(actor, student_id: int) -> list[dict]:
        """Every enrollment row of a student, oldest first."""
        authorize(actor, Action.VIEW_PROGRESS, UserRef(student_id))
        rows = get_db().execute(
            "SELECT se.*, c.name AS classroom_name FROM student_enrollments se "
            "JOIN classrooms c ON se.classroom_id = c.id "
            "WHERE se.student_id = ? ORDER BY se.id",
            (student_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def self_enroll(actor, classroom_id: int) -> dict:
        authorize(actor, Action.SELF_ENROLL)

        with transaction() as db:
            current = EnrollmentStoreDB.current_enrollment(actor.id)
            if current:
                raise _already_enrolled(current)
            classroom = ClassroomStoreDB.require_active(classroom_id)
            _ensure_capacity(classroom)
            enrollment_id = _insert_active(db, actor.id, classroom_id)

        logger.info("Student %s self-enrolled in classroom %s", actor.id, classroom_id)
        log_event("enroll_self", actor.id, f"classroom={classroom_id}")
        return {
            "enrollment_id": enrollment_id,
            "classroom_id": classroom_id,
            "message": f"You have enrolled in {classroom['name']} with {classroom['teacher_name']}",
        }

    @staticmethod
    def teacher_enroll(actor, classroom_id: int, student_id: int) -> dict:
        with transaction() as db:
            classroom = ClassroomStoreDB.require_active(classroom_id)
            authorize(actor, Action.MANAGE_CLASSROOM, ClassroomRef(classroom_id),
                      message="You can only enroll students in your own classrooms")
            student = _require_student(student_id)

            # The rule is global: look in every classroom, not only this teacher's
            current = EnrollmentStoreDB.current_enrollment(student_id)
            if current:
                raise _already_enrolled(current, student["name"])
            _ensure_capacity(classroom)
            enrollment_id = _insert_active(db, student_id, classroom_id,
                                           student_name=student["name"])

        logger.info("Teacher %s enrolled student %s in classroom %s", actor.id, student_id, classroom_id)
        log_event("enroll_teacher", actor.id, f"student={student_id} classroom={classroom_id}")
        return {
            "enrollment_id": enrollment_id,
            "classroom_id": classroom_id,
            "message": f"{student['name']} has been enrolled in {classroom['name']}",
        }

    @staticmethod
    def transfer(actor, student_id: int, new_classroom_id: int, reason: str | None = None) -> dict:
        """Replace the student's active enrollment with one in ``new_classroom_id``.

        The old row flips to 'transferred' and the new active row is inserted
        in the same transaction; readers never see zero or two active rows.
        """
        with transaction() as db:
            new_classroom = ClassroomStoreDB.require_active(new_classroom_id)
            authorize(actor, Action.MANAGE_CLASSROOM, ClassroomRef(new_classroom_id),
                      message="You can only transfer students into your own classrooms")

            current = EnrollmentStoreDB.current_enrollment(student_id)
            if current is None:
                raise NotEnrolled()
            if current["classroom_id"] == new_classroom_id:
                raise ValidationError(
                    f'{current["student_name"]} is already in "{new_classroom["name"]}"'
                )
            _ensure_capacity(new_classroom, label="Destination classroom")

            db.execute(
                "UPDATE student_enrollments SET status = 'transferred', notes = ? WHERE id = ?",
                (reason or "Transferred by teacher", current["id"]),
            )
            enrollment_id = _insert_active(
                db, student_id, new_classroom_id,
                notes=f"Transferred from {current['classroom_name']}",
                student_name=current["student_name"],
            )

        logger.info("Teacher %s transferred student %s from classroom %s to %s",
                    actor.id, student_id, current["classroom_id"], new_classroom_id)
        log_event("enroll_transfer", actor.id,
                  f"student={student_id} from={current['classroom_id']} to={new_classroom_id}")
        return {
            "enrollment_id": enrollment_id,
            "previous_enrollment_id": current["id"],
            "classroom_id": new_classroom_id,
            "message": (f'{current["student_name"]} has been transferred from '
                        f'"{current["classroom_name"]}" to "{new_classroom["name"]}"'),
        }

    @staticmethod
    def unenroll(actor, student_id: int, reason: str | None = None) -> dict:
        require_capability(actor, Action.MANAGE_CLASSROOM)

        with transaction() as db:
            current = EnrollmentStoreDB.current_enrollment(student_id)
            if current is None:
                raise NotEnrolled()
            authorize(actor, Action.MANAGE_CLASSROOM, ClassroomRef(current["classroom_id"]),
                      message="You can only unenroll students from your own classrooms")
            db.execute(
                "UPDATE student_enrollments SET status = 'inactive', notes = ? WHERE id = ?",
                (reason or "Unenrolled by teacher", current["id"]),
            )

        logger.info("Teacher %s unenrolled student %s from classroom %s",
                    actor.id, student_id, current["classroom_id"])
        log_event("enroll_remove", actor.id, f"student={student_id} classroom={current['classroom_id']}")
        return {
            "enrollment_id": current["id"],
            "message": f'{current["student_name"]} has been unenrolled from "{current["classroom_name"]}"',
        }

    @staticmethod
    def available_classrooms(actor) -> list[dict]:
        """Active classrooms with free seats that the student is not in."""
        authorize(actor, Action.BROWSE_CLASSROOMS)
        rows = get_db().execute(
            "SELECT c.id, c.name, c.grade_level, c.section, c.school_year, c.max_students, "
            "u.name AS teacher_name, COUNT(se.id) AS current_students "
            "FROM classrooms c "
            "JOIN users u ON c.teacher_id = u.id "
            "LEFT JOIN student_enrollments se ON c.id = se.classroom_id AND se.status = 'active' "
            "WHERE c.active = 1 AND c.id NOT IN ("
            "  SELECT classroom_id FROM student_enrollments WHERE student_id = ? AND status = 'active'"
            ") "
            "GROUP BY c.id "
            "HAVING current_students < c.max_students "
            "ORDER BY c.school_year DESC, c.grade_level, c.section",
            (actor.id,),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def search_student(actor, email: str) -> dict:
        """Find an active child by email for the enrollment form."""
        authorize(actor, Action.SEARCH_STUDENTS)
        email = str(email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required")

        row = get_db().execute(
            "SELECT id, name, email, created_at FROM users "
            "WHERE email = ? AND role = ? AND active = 1",
            (email, Role.CHILD.value),
        ).fetchone()
        if not row:
            raise NotFound("No student found with that email")

        current = EnrollmentStoreDB.current_enrollment(row["id"])
        if current and current["teacher_id"] == actor.id:
            raise AlreadyEnrolled(
                f'The student is already enrolled in: {current["classroom_name"]}', current,
            )
        return dict(row)
