"""Tests for database.py — schema, storage handle, transactions, constraints."""

import sqlite3

import pytest

from database import MIGRATIONS, get_db, get_storage, init_storage, transaction


class TestSchema:
    """Verify all tables are created correctly."""

    def test_tables_exist(self, db):
        tables = {r["name"] for r in db.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()}
        expected = {
            "users", "classrooms", "student_enrollments", "parent_child_relationships",
            "titanic_words", "game_sessions", "game_config", "audit_log", "schema_version",
        }
        assert expected <= tables

    def test_wal_mode(self, db):
        mode = db.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"

    def test_foreign_keys_enabled(self, db):
        assert db.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_all_migrations_recorded(self, db):
        versions = {r["version"] for r in db.execute("SELECT version FROM schema_version").fetchall()}
        assert versions == {1} | {v for v, _ in MIGRATIONS}

    def test_role_check_constraint(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO users (name, email, role) VALUES ('X', 'x@test.com', 'docente')"
            )


class TestStorageHandle:
    def test_init_storage_is_idempotent(self, app):
        first = app.extensions["storage"]
        second = init_storage(app)
        assert second is first

    def test_schema_version_on_handle(self, app):
        with app.app_context():
            assert get_storage().schema_version == max(v for v, _ in MIGRATIONS)

    def test_connection_reused_within_context(self, app):
        with app.app_context():
            assert get_db() is get_db()


class TestTransaction:
    def test_commit(self, db):
        with transaction() as conn:
            conn.execute(
                "INSERT INTO classrooms (name, teacher_id, max_students) VALUES ('T', 1, 5)"
            )
        assert db.execute("SELECT COUNT(*) FROM classrooms").fetchone()[0] == 1

    def test_rollback_on_error(self, db):
        with pytest.raises(RuntimeError):
            with transaction() as conn:
                conn.execute(
                    "INSERT INTO classrooms (name, teacher_id, max_students) VALUES ('T', 1, 5)"
                )
                raise RuntimeError("boom")
        assert db.execute("SELECT COUNT(*) FROM classrooms").fetchone()[0] == 0
        assert not db.in_transaction

    def test_nested_joins_outer(self, db):
        with pytest.raises(RuntimeError):
            with transaction():
                with transaction() as inner:
                    inner.execute(
                        "INSERT INTO classrooms (name, teacher_id, max_students) VALUES ('T', 1, 5)"
                    )
                raise RuntimeError("outer fails")
        assert db.execute("SELECT COUNT(*) FROM classrooms").fetchone()[0] == 0


class TestConstraints:
    def test_one_active_enrollment_per_student(self, db, make_classroom, enroll):
        a = make_classroom(1, "A")
        b = make_classroom(1, "B")
        enroll(4, a)
        with pytest.raises(sqlite3.IntegrityError):
            enroll(4, b)

    def test_inactive_rows_do_not_count(self, db, make_classroom, enroll):
        a = make_classroom(1, "A")
        b = make_classroom(1, "B")
        first = enroll(4, a)
        db.execute("UPDATE student_enrollments SET status = 'transferred' WHERE id = ?", (first,))
        enroll(4, b)
        rows = db.execute(
            "SELECT status FROM student_enrollments WHERE student_id = 4 ORDER BY id"
        ).fetchall()
        assert [r["status"] for r in rows] == ["transferred", "active"]

    def test_word_text_unique(self, db):
        db.execute(
            "INSERT INTO titanic_words (word, hint, category, difficulty, created_by) "
            "VALUES ('AUTO', 'h', 'c', 1, 1)"
        )
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO titanic_words (word, hint, category, difficulty, created_by) "
                "VALUES ('AUTO', 'h2', 'c', 2, 2)"
            )

    def test_relationship_pair_unique(self, db, link_parent):
        link_parent(3, 4)
        with pytest.raises(sqlite3.IntegrityError):
            link_parent(3, 4)
