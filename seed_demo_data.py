"""
Seed Demo Data — Standalone script and pytest helper.

Creates 1 teacher with two classrooms, 6 demo children enrolled across them,
1 parent linked to the first child, a starter Titanic word list, and a few
weeks of game sessions. Demo accounts are found by email and children who
already have sessions get no new ones, so it is safe to run twice.

Usage:
    python seed_demo_data.py           # Seed into the configured database
    python seed_demo_data.py --reset   # Clear demo data first
"""

from __future__ import annotations

import json
import random
import sys
from datetime import datetime, timedelta

from werkzeug.security import generate_password_hash

from config import GAME_TYPES

DEMO_TEACHER = {"name": "Profesora Ana Ruiz", "email": "teacher@demo.spell"}
DEMO_PARENT = {"name": "Carlos Pérez", "email": "parent@demo.spell"}

DEMO_CHILDREN = [
    {"name": "Lucía Pérez", "email": "lucia@demo.spell"},
    {"name": "Mateo Gómez", "email": "mateo@demo.spell"},
    {"name": "Sofía Díaz", "email": "sofia@demo.spell"},
    {"name": "Diego Torres", "email": "diego@demo.spell"},
    {"name": "Valentina Rojas", "email": "valentina@demo.spell"},
    {"name": "Samuel Castro", "email": "samuel@demo.spell"},
]

DEMO_CLASSROOMS = [
    # name, grade, section
    ("3er Grado A", "3", "A"),
    ("4to Grado B", "4", "B"),
]

DEMO_WORDS = [
    ("BARCO", "Vehicle that floats on water", "TRANSPORTE", 1),
    ("ANCLA", "Keeps the ship in place", "TRANSPORTE", 1),
    ("OCÉANO", "A very large body of salt water", "NATURALEZA", 2),
    ("ICEBERG", "Floating mountain of ice", "NATURALEZA", 2),
    ("CAPITÁN", "Person in command of a ship", "PERSONAS", 2),
    ("NAVEGACIÓN", "The art of steering a ship", "TRANSPORTE", 3),
    ("SALVAVIDAS", "Keeps you afloat", "OBJETOS", 3),
    ("BRÚJULA", "Always points north", "OBJETOS", 3),
]


def _user_id(db, info: dict, role: str, password: str, created_at: str) -> int:
    """Id of the demo account with this email, created on first run."""
    row = db.execute("SELECT id FROM users WHERE email = ?", (info["email"],)).fetchone()
    if row:
        return row["id"]
    return db.execute(
        "INSERT INTO users (name, email, password_hash, role, created_at) VALUES (?, ?, ?, ?, ?)",
        (info["name"], info["email"], password, role, created_at),
    ).lastrowid


def _classroom_id(db, teacher_id: int, name: str, grade: str, section: str, now: datetime) -> int:
    row = db.execute(
        "SELECT id FROM classrooms WHERE teacher_id = ? AND name = ?", (teacher_id, name),
    ).fetchone()
    if row:
        return row["id"]
    return db.execute(
        "INSERT INTO classrooms (name, teacher_id, grade_level, section, school_year, "
        "max_students, active, created_at) VALUES (?, ?, ?, ?, ?, 40, 1, ?)",
        (name, teacher_id, grade, section, f"{now.year}-{now.year + 1}", now.isoformat()),
    ).lastrowid


def _demo_user_ids(db) -> list[int]:
    emails = [DEMO_TEACHER["email"], DEMO_PARENT["email"]] + [c["email"] for c in DEMO_CHILDREN]
    placeholders = ",".join("?" * len(emails))
    rows = db.execute(f"SELECT id FROM users WHERE email IN ({placeholders})", emails).fetchall()
    return [r["id"] for r in rows]


def seed(db) -> dict:
    """Seed demo data into the database. Returns summary dict."""
    now = datetime.now()
    password = generate_password_hash("demo123")

    teacher_uid = _user_id(db, DEMO_TEACHER, "teacher", password, now.isoformat())
    parent_uid = _user_id(db, DEMO_PARENT, "parent", password, now.isoformat())

    classroom_ids = [
        _classroom_id(db, teacher_uid, name, grade, section, now)
        for name, grade, section in DEMO_CLASSROOMS
    ]

    child_ids = []
    session_count = 0
    for i, child in enumerate(DEMO_CHILDREN):
        uid = _user_id(db, child, "child", password, now.isoformat())
        child_ids.append(uid)

        # Alternate children between the two classrooms
        already = db.execute(
            "SELECT 1 FROM student_enrollments WHERE student_id = ? AND status = 'active'", (uid,),
        ).fetchone()
        if not already:
            db.execute(
                "INSERT INTO student_enrollments (student_id, classroom_id, status, enrollment_date, notes) "
                "VALUES (?, ?, 'active', ?, 'Demo enrollment')",
                (uid, classroom_ids[i % 2], now.isoformat()),
            )

        played = db.execute("SELECT 1 FROM game_sessions WHERE user_id = ? LIMIT 1", (uid,)).fetchone()
        if played:
            continue

        # 3-8 sessions per child over the last 3 weeks
        for _ in range(random.randint(3, 8)):
            total = random.choice([5, 10])
            correct = random.randint(total // 2, total)
            ts = now - timedelta(days=random.randint(0, 20), hours=random.randint(8, 18))
            db.execute(
                "INSERT INTO game_sessions (user_id, game_type, score, total_questions, "
                "correct_answers, incorrect_answers, time_spent, completed, session_data, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?)",
                (uid, random.choice(GAME_TYPES), correct * 10, total, correct, total - correct,
                 random.randint(60, 600), json.dumps({"demo": True}), ts.isoformat()),
            )
            session_count += 1

    db.execute(
        "INSERT OR IGNORE INTO parent_child_relationships "
        "(parent_id, child_id, relationship_type, is_primary, phone, created_at) "
        "VALUES (?, ?, 'father', 1, '', ?)",
        (parent_uid, child_ids[0], now.isoformat()),
    )

    for word, hint, category, difficulty in DEMO_WORDS:
        db.execute(
            "INSERT OR IGNORE INTO titanic_words (word, hint, category, difficulty, is_active, "
            "created_by, classroom_id, is_global, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, 1, ?, NULL, 1, ?, ?)",
            (word, hint, category, difficulty, teacher_uid, now.isoformat(), now.isoformat()),
        )

    return {
        "teacher_id": teacher_uid,
        "parent_id": parent_uid,
        "children": child_ids,
        "classroom_ids": classroom_ids,
        "sessions_seeded": session_count,
        "words_seeded": len(DEMO_WORDS),
    }


def clear_demo(db) -> None:
    """Remove all demo data."""
    uids = _demo_user_ids(db)
    if not uids:
        return
    placeholders = ",".join("?" * len(uids))

    db.execute(f"DELETE FROM game_sessions WHERE user_id IN ({placeholders})", uids)
    db.execute(
        f"DELETE FROM student_enrollments WHERE student_id IN ({placeholders}) "
        f"OR classroom_id IN (SELECT id FROM classrooms WHERE teacher_id IN ({placeholders}))",
        uids + uids,
    )
    db.execute(
        f"DELETE FROM parent_child_relationships WHERE parent_id IN ({placeholders}) "
        f"OR child_id IN ({placeholders})",
        uids + uids,
    )
    db.execute(f"DELETE FROM titanic_words WHERE created_by IN ({placeholders})", uids)
    db.execute(f"DELETE FROM game_config WHERE created_by IN ({placeholders})", uids)
    db.execute(f"DELETE FROM classrooms WHERE teacher_id IN ({placeholders})", uids)
    db.execute(f"DELETE FROM users WHERE id IN ({placeholders})", uids)


if __name__ == "__main__":
    from app import create_app
    from database import transaction

    app = create_app()
    with app.app_context():
        with transaction() as db:
            if "--reset" in sys.argv:
                clear_demo(db)
                print("[Seed] Demo data cleared.")
            result = seed(db)
        print(f"[Seed] Done: {result}")
