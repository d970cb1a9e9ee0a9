"""
Test fixtures for Spelling Classroom.

Provides app, db and per-role identity fixtures over a file-based SQLite
database, factory fixtures for classrooms, enrollments and game sessions,
and test clients that carry a bearer token for each seeded role.
"""

from __future__ import annotations

import json
import pytest
from datetime import datetime

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from permissions import Identity, Role

PASSWORD = "testpass123"

# id, name, email, role
SEED_USERS = [
    (1, "Teacher Tina", "teacher@test.com", "teacher"),
    (2, "Teacher Tom", "teacher2@test.com", "teacher"),
    (3, "Parent Pat", "parent@test.com", "parent"),
    (4, "Ana", "ana@test.com", "child"),
    (5, "Ben", "ben@test.com", "child"),
    (6, "Cleo", "cleo@test.com", "child"),
]


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from werkzeug.security import generate_password_hash
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
    })

    with app.app_context():
        from database import get_db

        db = get_db()
        pw_hash = generate_password_hash(PASSWORD)
        for uid, name, email, role in SEED_USERS:
            db.execute(
                "INSERT INTO users (id, name, email, password_hash, role, active, created_at) "
                "VALUES (?, ?, ?, ?, ?, 1, ?)",
                (uid, name, email, pw_hash, role, datetime.now().isoformat()),
            )

    yield app


@pytest.fixture
def db(app):
    """Connection inside an app context, for store-level tests."""
    with app.app_context():
        from database import get_db
        yield get_db()


# ── Identities ─────────────────────────────────────────────

@pytest.fixture
def teacher():
    return Identity(1, Role.TEACHER, "Teacher Tina")


@pytest.fixture
def other_teacher():
    return Identity(2, Role.TEACHER, "Teacher Tom")


@pytest.fixture
def parent():
    return Identity(3, Role.PARENT, "Parent Pat")


@pytest.fixture
def child():
    return Identity(4, Role.CHILD, "Ana")


@pytest.fixture
def child2():
    return Identity(5, Role.CHILD, "Ben")


# ── Factories ──────────────────────────────────────────────
#
# Each write runs in its own app context, so no connection (and no cached
# login) outlives the call when route tests use these alongside a client.

def _execute(app, sql: str, params: tuple) -> int:
    with app.app_context():
        from database import get_db
        return get_db().execute(sql, params).lastrowid


@pytest.fixture
def make_classroom(app):
    """Insert a classroom directly; returns its id."""
    def _make(teacher_id: int, name: str, max_students: int = 40, active: bool = True) -> int:
        return _execute(
            app,
            "INSERT INTO classrooms (name, teacher_id, grade_level, section, school_year, "
            "max_students, active, created_at) VALUES (?, ?, '3', 'A', '2025-2026', ?, ?, ?)",
            (name, teacher_id, max_students, int(active), datetime.now().isoformat()),
        )
    return _make


@pytest.fixture
def make_child(app):
    """Insert an extra child account; returns its id."""
    counter = {"n": 0}

    def _make(name: str | None = None) -> int:
        counter["n"] += 1
        label = name or f"Extra Child {counter['n']}"
        return _execute(
            app,
            "INSERT INTO users (name, email, password_hash, role, created_at) "
            "VALUES (?, ?, '', 'child', ?)",
            (label, f"extra{counter['n']}@test.com", datetime.now().isoformat()),
        )
    return _make


@pytest.fixture
def enroll(app):
    """Insert an active enrollment directly, bypassing the engine."""
    def _enroll(student_id: int, classroom_id: int) -> int:
        return _execute(
            app,
            "INSERT INTO student_enrollments (student_id, classroom_id, status, enrollment_date) "
            "VALUES (?, ?, 'active', ?)",
            (student_id, classroom_id, datetime.now().isoformat()),
        )
    return _enroll


@pytest.fixture
def add_session(app):
    """Insert a game session row; returns its id."""
    def _add(user_id: int, game_type: str = "ortografia", score: int = 0,
             completed: bool = True, time_spent: int = 60, created_at: str | None = None) -> int:
        return _execute(
            app,
            "INSERT INTO game_sessions (user_id, game_type, score, total_questions, correct_answers, "
            "incorrect_answers, time_spent, completed, session_data, created_at) "
            "VALUES (?, ?, ?, 10, 0, 0, ?, ?, ?, ?)",
            (user_id, game_type, score, time_spent, int(completed), json.dumps({}),
             created_at or datetime.now().isoformat()),
        )
    return _add


@pytest.fixture
def link_parent(app):
    def _link(parent_id: int, child_id: int, is_primary: bool = False) -> None:
        _execute(
            app,
            "INSERT INTO parent_child_relationships (parent_id, child_id, relationship_type, "
            "is_primary, created_at) VALUES (?, ?, 'representative', ?, ?)",
            (parent_id, child_id, int(is_primary), datetime.now().isoformat()),
        )
    return _link


# ── HTTP clients ───────────────────────────────────────────

@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def _token_client(app, user_id: int):
    from auth import User, issue_token

    with app.app_context():
        token = issue_token(User.get(user_id))
    client = app.test_client()
    client.environ_base["HTTP_AUTHORIZATION"] = f"Bearer {token}"
    return client


@pytest.fixture
def teacher_client(app):
    """Client authenticated as Teacher Tina (id 1)."""
    return _token_client(app, 1)


@pytest.fixture
def other_teacher_client(app):
    return _token_client(app, 2)


@pytest.fixture
def parent_client(app):
    return _token_client(app, 3)


@pytest.fixture
def child_client(app):
    """Client authenticated as Ana (id 4)."""
    return _token_client(app, 4)
