"""Tests for seed_demo_data.py — demo seed and reset."""

from seed_demo_data import DEMO_CHILDREN, DEMO_WORDS, clear_demo, seed


def count(db, table):
    return db.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]


class TestSeed:
    def test_seeds_everything(self, db):
        result = seed(db)
        assert len(result["children"]) == len(DEMO_CHILDREN)
        assert result["sessions_seeded"] >= 3 * len(DEMO_CHILDREN)
        assert count(db, "titanic_words") == len(DEMO_WORDS)
        for uid in result["children"]:
            row = db.execute(
                "SELECT classroom_id FROM student_enrollments WHERE student_id = ? AND status = 'active'",
                (uid,),
            ).fetchone()
            assert row["classroom_id"] in result["classroom_ids"]

    def test_second_run_adds_nothing(self, db):
        first = seed(db)
        before = {t: count(db, t) for t in (
            "users", "classrooms", "student_enrollments", "game_sessions",
            "parent_child_relationships", "titanic_words",
        )}

        second = seed(db)
        assert second["sessions_seeded"] == 0
        assert second["teacher_id"] == first["teacher_id"]
        assert second["children"] == first["children"]
        assert second["classroom_ids"] == first["classroom_ids"]
        assert {t: count(db, t) for t in before} == before

    def test_existing_users_are_left_alone(self, db):
        for uid in range(200, 208):
            db.execute(
                "INSERT INTO users (id, name, email, password_hash, role) VALUES (?, ?, ?, '', 'child')",
                (uid, f"Real {uid}", f"real{uid}@test.com"),
            )

        result = seed(db)
        demo_ids = {result["teacher_id"], result["parent_id"], *result["children"]}
        assert demo_ids.isdisjoint(range(200, 208))
        untouched = db.execute(
            "SELECT COUNT(*) AS n FROM game_sessions WHERE user_id BETWEEN 200 AND 207"
        ).fetchone()["n"]
        assert untouched == 0
        enrolled = db.execute(
            "SELECT COUNT(*) AS n FROM student_enrollments WHERE student_id BETWEEN 200 AND 207"
        ).fetchone()["n"]
        assert enrolled == 0

    def test_clear_demo(self, db):
        seed(db)
        clear_demo(db)
        assert count(db, "users") == 6
        assert count(db, "classrooms") == 0
        assert count(db, "game_sessions") == 0
        assert count(db, "titanic_words") == 0
        assert clear_demo(db) is None
