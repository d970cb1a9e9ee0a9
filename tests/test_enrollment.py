"""Tests for enrollment_store.py — the single-active-classroom rule."""

import threading

import pytest

from classroom_store import ClassroomStoreDB, active_enrollment_count
from database import get_db
from enrollment_store import EnrollmentStoreDB, _insert_active
from errors import (
    AlreadyEnrolled,
    ClassroomFull,
    ClassroomNotFound,
    Forbidden,
    NotEnrolled,
    NotFound,
    ValidationError,
)
from game_store import GameSessionLedgerDB


def active_rows(db, student_id):
    return db.execute(
        "SELECT * FROM student_enrollments WHERE student_id = ? AND status = 'active'",
        (student_id,),
    ).fetchall()


def fill(make_child, enroll, classroom_id, n):
    for _ in range(n):
        enroll(make_child(), classroom_id)


class TestSelfEnroll:
    def test_enrolls(self, db, child, make_classroom):
        cid = make_classroom(1, "Room A")
        result = EnrollmentStoreDB.self_enroll(child, cid)
        assert result["classroom_id"] == cid
        assert "Room A" in result["message"]
        assert len(active_rows(db, child.id)) == 1

    def test_second_classroom_rejected(self, db, child, make_classroom, make_child, enroll):
        a = make_classroom(1, "A")
        b = make_classroom(2, "B")
        fill(make_child, enroll, a, 5)

        EnrollmentStoreDB.self_enroll(child, a)
        assert active_enrollment_count(a) == 6

        with pytest.raises(AlreadyEnrolled) as exc:
            EnrollmentStoreDB.self_enroll(child, b)
        assert '"A"' in exc.value.message
        assert "Teacher Tina" in exc.value.message
        assert exc.value.details["classroomId"] == a
        assert active_enrollment_count(b) == 0

    def test_twice_into_same_classroom(self, db, child, make_classroom):
        cid = make_classroom(1, "A")
        EnrollmentStoreDB.self_enroll(child, cid)
        with pytest.raises(AlreadyEnrolled):
            EnrollmentStoreDB.self_enroll(child, cid)
        assert len(active_rows(db, child.id)) == 1

    def test_missing_classroom(self, db, child):
        with pytest.raises(ClassroomNotFound):
            EnrollmentStoreDB.self_enroll(child, 999)

    def test_inactive_classroom(self, db, child, make_classroom):
        cid = make_classroom(1, "Old", active=False)
        with pytest.raises(ClassroomNotFound):
            EnrollmentStoreDB.self_enroll(child, cid)

    def test_full_classroom(self, db, child, make_classroom, make_child, enroll):
        cid = make_classroom(1, "Tiny", max_students=2)
        fill(make_child, enroll, cid, 2)
        with pytest.raises(ClassroomFull):
            EnrollmentStoreDB.self_enroll(child, cid)
        assert active_enrollment_count(cid) == 2
        assert active_rows(db, child.id) == []

    def test_teacher_cannot_self_enroll(self, db, teacher, make_classroom):
        cid = make_classroom(1, "A")
        with pytest.raises(Forbidden):
            EnrollmentStoreDB.self_enroll(teacher, cid)


class TestTeacherEnroll:
    def test_enrolls(self, db, teacher, child, make_classroom):
        cid = make_classroom(teacher.id, "A")
        result = EnrollmentStoreDB.teacher_enroll(teacher, cid, child.id)
        assert "Ana" in result["message"]
        assert len(active_rows(db, child.id)) == 1

    def test_not_owner(self, db, other_teacher, child, make_classroom):
        cid = make_classroom(1, "A")
        with pytest.raises(Forbidden):
            EnrollmentStoreDB.teacher_enroll(other_teacher, cid, child.id)

    def test_missing_classroom_before_ownership(self, db, teacher, child):
        with pytest.raises(ClassroomNotFound):
            EnrollmentStoreDB.teacher_enroll(teacher, 999, child.id)

    def test_unknown_student(self, db, teacher, make_classroom):
        cid = make_classroom(teacher.id, "A")
        with pytest.raises(NotFound):
            EnrollmentStoreDB.teacher_enroll(teacher, cid, 999)

    def test_parent_is_not_a_student(self, db, teacher, parent, make_classroom):
        cid = make_classroom(teacher.id, "A")
        with pytest.raises(NotFound):
            EnrollmentStoreDB.teacher_enroll(teacher, cid, parent.id)

    def test_global_rule_spans_teachers(self, db, teacher, child, make_classroom, enroll):
        theirs = make_classroom(2, "Other Room")
        mine = make_classroom(teacher.id, "My Room")
        enroll(child.id, theirs)
        with pytest.raises(AlreadyEnrolled) as exc:
            EnrollmentStoreDB.teacher_enroll(teacher, mine, child.id)
        assert "Ana" in exc.value.message
        assert "Other Room" in exc.value.message
        assert "Teacher Tom" in exc.value.message

    def test_full_classroom(self, db, teacher, child, make_classroom, make_child, enroll):
        cid = make_classroom(teacher.id, "C", max_students=40)
        fill(make_child, enroll, cid, 40)
        with pytest.raises(ClassroomFull) as exc:
            EnrollmentStoreDB.teacher_enroll(teacher, cid, child.id)
        assert "40/40" in exc.value.message
        assert active_enrollment_count(cid) == 40


class TestTransfer:
    def test_moves_active_enrollment(self, db, teacher, child, make_classroom, enroll, add_session):
        a = make_classroom(2, "A")
        b = make_classroom(teacher.id, "B")
        old_id = enroll(child.id, a)
        add_session(child.id, score=70)

        result = EnrollmentStoreDB.transfer(teacher, child.id, b)

        old = db.execute("SELECT status FROM student_enrollments WHERE id = ?", (old_id,)).fetchone()
        assert old["status"] == "transferred"
        active = active_rows(db, child.id)
        assert len(active) == 1
        assert active[0]["classroom_id"] == b
        assert result["previous_enrollment_id"] == old_id
        assert '"A"' in result["message"] and '"B"' in result["message"]
        assert GameSessionLedgerDB.aggregate_for_user(child.id)["total_sessions"] == 1

    def test_never_zero_or_two_active_rows(self, db, teacher, child, make_classroom, enroll):
        a = make_classroom(teacher.id, "A")
        b = make_classroom(teacher.id, "B")
        enroll(child.id, a)
        EnrollmentStoreDB.transfer(teacher, child.id, b)
        statuses = [r["status"] for r in db.execute(
            "SELECT status FROM student_enrollments WHERE student_id = ? ORDER BY id", (child.id,),
        ).fetchall()]
        assert statuses == ["transferred", "active"]

    def test_full_destination_rolls_back(self, db, teacher, child, make_classroom, make_child, enroll):
        a = make_classroom(teacher.id, "A")
        b = make_classroom(teacher.id, "B", max_students=1)
        enroll(child.id, a)
        fill(make_child, enroll, b, 1)
        with pytest.raises(ClassroomFull):
            EnrollmentStoreDB.transfer(teacher, child.id, b)
        active = active_rows(db, child.id)
        assert len(active) == 1 and active[0]["classroom_id"] == a

    def test_not_enrolled(self, db, teacher, child, make_classroom):
        b = make_classroom(teacher.id, "B")
        with pytest.raises(NotEnrolled):
            EnrollmentStoreDB.transfer(teacher, child.id, b)

    def test_must_own_destination(self, db, other_teacher, child, make_classroom, enroll):
        a = make_classroom(other_teacher.id, "A")
        b = make_classroom(1, "B")
        enroll(child.id, a)
        with pytest.raises(Forbidden):
            EnrollmentStoreDB.transfer(other_teacher, child.id, b)

    def test_same_classroom(self, db, teacher, child, make_classroom, enroll):
        a = make_classroom(teacher.id, "A")
        enroll(child.id, a)
        with pytest.raises(ValidationError):
            EnrollmentStoreDB.transfer(teacher, child.id, a)


class TestUnenroll:
    def test_unenroll(self, db, teacher, child, make_classroom, enroll):
        a = make_classroom(teacher.id, "A")
        row_id = enroll(child.id, a)
        result = EnrollmentStoreDB.unenroll(teacher, child.id, "Moved away")
        assert result["enrollment_id"] == row_id
        row = db.execute("SELECT status, notes FROM student_enrollments WHERE id = ?", (row_id,)).fetchone()
        assert row["status"] == "inactive"
        assert row["notes"] == "Moved away"
        assert active_rows(db, child.id) == []

    def test_not_enrolled(self, db, teacher, child):
        with pytest.raises(NotEnrolled):
            EnrollmentStoreDB.unenroll(teacher, child.id)

    def test_other_teachers_student(self, db, other_teacher, child, make_classroom, enroll):
        enroll(child.id, make_classroom(1, "A"))
        with pytest.raises(Forbidden):
            EnrollmentStoreDB.unenroll(other_teacher, child.id)

    def test_child_cannot_unenroll(self, db, child):
        with pytest.raises(Forbidden):
            EnrollmentStoreDB.unenroll(child, child.id)

    def test_can_reenroll_after_unenroll(self, db, teacher, child, make_classroom, enroll):
        a = make_classroom(teacher.id, "A")
        enroll(child.id, a)
        EnrollmentStoreDB.unenroll(teacher, child.id)
        EnrollmentStoreDB.self_enroll(child, a)
        assert len(active_rows(db, child.id)) == 1


class TestActiveSlotGuard:
    def test_index_conflict_reports_already_enrolled(self, db, child, make_classroom, enroll):
        a = make_classroom(1, "A")
        b = make_classroom(1, "B")
        enroll(child.id, a)
        with pytest.raises(AlreadyEnrolled) as exc:
            _insert_active(db, child.id, b)
        assert exc.value.details["classroomId"] == a
        assert len(active_rows(db, child.id)) == 1

    def test_concurrent_self_enroll_single_winner(self, app, child, make_classroom):
        classrooms = [make_classroom(1, f"Room {i}") for i in range(8)]
        barrier = threading.Barrier(len(classrooms))
        outcomes, errors = [], []

        def attempt(classroom_id):
            with app.app_context():
                barrier.wait()
                try:
                    EnrollmentStoreDB.self_enroll(child, classroom_id)
                    outcomes.append("ok")
                except AlreadyEnrolled:
                    outcomes.append("dup")
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=attempt, args=(cid,)) for cid in classrooms]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert outcomes.count("ok") == 1
        assert outcomes.count("dup") == len(classrooms) - 1
        with app.app_context():
            assert len(active_rows(get_db(), child.id)) == 1


class TestQueries:
    def test_available_excludes_full_and_current(self, db, child, make_classroom, make_child, enroll):
        mine = make_classroom(1, "Mine")
        full = make_classroom(1, "Full", max_students=1)
        make_classroom(2, "Open")
        make_classroom(2, "Closed", active=False)
        fill(make_child, enroll, full, 1)
        enroll(child.id, mine)

        names = [c["name"] for c in EnrollmentStoreDB.available_classrooms(child)]
        assert names == ["Open"]

    def test_search_student(self, db, teacher):
        student = EnrollmentStoreDB.search_student(teacher, "  ANA@test.com ")
        assert student["id"] == 4

    def test_search_student_missing(self, db, teacher):
        with pytest.raises(NotFound):
            EnrollmentStoreDB.search_student(teacher, "nobody@test.com")

    def test_search_student_already_mine(self, db, teacher, make_classroom, enroll):
        enroll(4, make_classroom(teacher.id, "Room A"))
        with pytest.raises(AlreadyEnrolled, match="Room A"):
            EnrollmentStoreDB.search_student(teacher, "ana@test.com")

    def test_search_student_enrolled_elsewhere_is_returned(self, db, teacher, make_classroom, enroll):
        enroll(4, make_classroom(2, "Their Room"))
        assert EnrollmentStoreDB.search_student(teacher, "ana@test.com")["id"] == 4

    def test_history(self, db, teacher, child, make_classroom, enroll):
        a = make_classroom(teacher.id, "A")
        b = make_classroom(teacher.id, "B")
        enroll(child.id, a)
        EnrollmentStoreDB.transfer(teacher, child.id, b)
        history = EnrollmentStoreDB.history(child, child.id)
        assert [h["classroom_name"] for h in history] == ["A", "B"]


class TestClassroomLifecycle:
    def test_deactivate_releases_students(self, db, teacher, child, make_classroom, enroll):
        a = make_classroom(teacher.id, "A")
        enroll(child.id, a)
        result = ClassroomStoreDB.deactivate(teacher, a)
        assert result["released_students"] == 1
        assert active_rows(db, child.id) == []
        assert ClassroomStoreDB.get(a)["active"] == 0

    def test_deactivate_not_owner(self, db, other_teacher, make_classroom):
        a = make_classroom(1, "A")
        with pytest.raises(Forbidden):
            ClassroomStoreDB.deactivate(other_teacher, a)
