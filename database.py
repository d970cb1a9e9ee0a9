"""
SQLite database layer for Spelling Classroom.

Uses raw sqlite3 with WAL mode and parameterized queries.
A schema_version table handles migrations.

Connections run in autocommit mode; multi-statement units of work go through
``transaction()``, which opens ``BEGIN IMMEDIATE`` so the write lock is held
from the first read of a check-then-write sequence until commit.
"""

from __future__ import annotations

import fcntl
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator

from flask import Flask, current_app, g

logger = logging.getLogger(__name__)


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Users (soft-deactivated, never deleted)
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL DEFAULT '',
    role TEXT NOT NULL CHECK (role IN ('teacher', 'parent', 'child')),
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_users_role ON users(role, active);

-- Classrooms, each owned by exactly one teacher
CREATE TABLE IF NOT EXISTS classrooms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    teacher_id INTEGER NOT NULL REFERENCES users(id),
    grade_level TEXT NOT NULL DEFAULT '',
    section TEXT NOT NULL DEFAULT '',
    school_year TEXT NOT NULL DEFAULT '',
    max_students INTEGER NOT NULL DEFAULT 40 CHECK (max_students > 0),
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_classrooms_teacher ON classrooms(teacher_id, active);

-- Enrollment history; rows are never deleted
CREATE TABLE IF NOT EXISTS student_enrollments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES users(id),
    classroom_id INTEGER NOT NULL REFERENCES classrooms(id),
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'inactive', 'transferred')),
    enrollment_date TEXT NOT NULL DEFAULT '',
    notes TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_enrollments_classroom ON student_enrollments(classroom_id, status);
-- At most one active enrollment per student
CREATE UNIQUE INDEX IF NOT EXISTS idx_enrollments_one_active
    ON student_enrollments(student_id) WHERE status = 'active';

-- Parent <-> child links
CREATE TABLE IF NOT EXISTS parent_child_relationships (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    parent_id INTEGER NOT NULL REFERENCES users(id),
    child_id INTEGER NOT NULL REFERENCES users(id),
    relationship_type TEXT NOT NULL DEFAULT 'representative',
    is_primary INTEGER NOT NULL DEFAULT 0,
    phone TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT '',
    UNIQUE(parent_id, child_id)
);
CREATE INDEX IF NOT EXISTS idx_relationships_child ON parent_child_relationships(child_id);

-- Word list (own / classroom / global scope)
CREATE TABLE IF NOT EXISTS titanic_words (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word TEXT NOT NULL UNIQUE,
    hint TEXT NOT NULL,
    category TEXT NOT NULL,
    difficulty INTEGER NOT NULL CHECK (difficulty IN (1, 2, 3)),
    is_active INTEGER NOT NULL DEFAULT 1,
    created_by INTEGER NOT NULL REFERENCES users(id),
    classroom_id INTEGER REFERENCES classrooms(id),
    is_global INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_words_active_difficulty ON titanic_words(is_active, difficulty);

-- Append-only game ledger
CREATE TABLE IF NOT EXISTS game_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    game_type TEXT NOT NULL DEFAULT '',
    score INTEGER NOT NULL DEFAULT 0,
    total_questions INTEGER NOT NULL DEFAULT 0,
    correct_answers INTEGER NOT NULL DEFAULT 0,
    incorrect_answers INTEGER NOT NULL DEFAULT 0,
    time_spent INTEGER NOT NULL DEFAULT 0,
    completed INTEGER NOT NULL DEFAULT 0,
    session_data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_sessions_user_created ON game_sessions(user_id, created_at);
"""


MIGRATIONS: list[tuple[int, str]] = [
    # Version 1 = base schema.
    # -----------------------------------------------------------
    # Migration 2: Security audit trail
    (2, """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            action TEXT NOT NULL,
            detail TEXT NOT NULL DEFAULT '',
            ip_address TEXT NOT NULL DEFAULT '',
            user_agent TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL DEFAULT ''
        );
        CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_log(user_id, created_at);
    """),
    # Migration 3: Per-game configuration presets
    (3, """
        CREATE TABLE IF NOT EXISTS game_config (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            game_type TEXT NOT NULL,
            difficulty_level INTEGER NOT NULL DEFAULT 1,
            words TEXT NOT NULL DEFAULT '[]',
            hints TEXT NOT NULL DEFAULT '{}',
            active INTEGER NOT NULL DEFAULT 1,
            created_by INTEGER NOT NULL REFERENCES users(id),
            created_at TEXT NOT NULL DEFAULT ''
        );
        CREATE INDEX IF NOT EXISTS idx_game_config_type ON game_config(game_type, active);
    """),
]


@dataclass
class Storage:
    """Handle for an initialised database, owned by one Flask app."""

    path: str
    schema_version: int = 0
    initialized_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, isolation_level=None, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn


def get_storage() -> Storage:
    storage = current_app.extensions.get("storage")
    if storage is None:
        raise RuntimeError("Storage is not initialised; call init_storage(app) first.")
    return storage


def get_db() -> sqlite3.Connection:
    """Return a DB connection from Flask g, creating if needed."""
    if "db" not in g:
        g.db = get_storage().connect()
    return g.db


def close_db(e=None) -> None:
    """Teardown handler — close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """Run a unit of work under SQLite's write lock.

    Nested calls join the outer transaction.
    """
    db = get_db()
    if db.in_transaction:
        yield db
        return
    db.execute("BEGIN IMMEDIATE")
    try:
        yield db
    except BaseException:
        db.execute("ROLLBACK")
        raise
    db.execute("COMMIT")


def init_db(conn: sqlite3.Connection) -> None:
    """Execute schema DDL to create all tables."""
    conn.executescript(SCHEMA)
    row = conn.execute("SELECT 1 FROM schema_version WHERE version = 1").fetchone()
    if not row:
        conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (1, ?)",
            (datetime.now().isoformat(),),
        )


def run_migrations(conn: sqlite3.Connection, db_path: str) -> int:
    """Apply any unapplied versioned migrations; return the schema version.

    Uses file-based locking to prevent race conditions when multiple
    workers start simultaneously.
    """
    lock_file = None
    if db_path != ":memory:":
        lock_path = Path(db_path).with_suffix(".migration.lock")
        try:
            lock_file = open(lock_path, "w")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
        except OSError:
            lock_file = None

    try:
        applied = {
            row["version"]
            for row in conn.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                conn.executescript(sql)
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
                logger.info("Applied schema migration %s", version)
                applied.add(version)
        return max(applied)
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_storage(app: Flask) -> Storage:
    """Create the schema and register teardown; idempotent per app.

    Returns the existing handle when the app already owns one.
    """
    existing = app.extensions.get("storage")
    if existing is not None:
        return existing

    db_path = app.config.get("DATABASE", str(Path(__file__).parent / "spelling.db"))
    storage = Storage(path=db_path)
    conn = storage.connect()
    try:
        init_db(conn)
        storage.schema_version = run_migrations(conn, db_path)
    finally:
        conn.close()

    app.extensions["storage"] = storage
    app.teardown_appcontext(close_db)
    logger.info("Storage ready at %s (schema v%s)", db_path, storage.schema_version)
    return storage
