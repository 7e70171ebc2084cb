"""
Seed Demo Data — standalone script and test helper.

Creates the demo student account with two sample daily entries. Seeding is
explicit: run it once after deployment or from a test fixture, never from a
request path.

Usage:
    python seed_demo_data.py           # Seed into the configured database
    python seed_demo_data.py --reset   # Clear demo data first
    flask seed-demo [--reset]
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta

from werkzeug.security import generate_password_hash

DEMO_STUDENT = {"name": "Demo Student", "email": "demo-student@demo.local"}
DEMO_PASSWORD = "DemoStudent1"


def _sample_entries(now: datetime) -> list[tuple]:
    """(date, goal_text, goal_completed, reflection_text, reflection_depth, confidence)"""
    return [
        (now.date().isoformat(), "Complete today's learning goals", 0, None, None, ""),
        ((now - timedelta(days=1)).date().isoformat(), "Practice coding exercises", 1,
         "Good progress today with understanding loops", 4, "HIGH"),
    ]


def seed(db) -> dict:
    """Seed the demo student if absent. Returns summary dict."""
    now = datetime.now()
    existing = db.execute(
        "SELECT id FROM users WHERE email = ?", (DEMO_STUDENT["email"],),
    ).fetchone()
    if existing:
        return {"created": False, "student_id": existing["id"], "entries_seeded": 0}

    cur = db.execute(
        "INSERT INTO users (name, email, password_hash, role, created_at) "
        "VALUES (?, ?, ?, 'student', ?)",
        (DEMO_STUDENT["name"], DEMO_STUDENT["email"],
         generate_password_hash(DEMO_PASSWORD), now.isoformat()),
    )
    student_id = cur.lastrowid
    db.execute(
        "INSERT INTO students (student_id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
        (student_id, DEMO_STUDENT["name"], now.isoformat(), now.isoformat()),
    )

    entries = _sample_entries(now)
    for day, goal_text, completed, refl_text, depth, confidence in entries:
        db.execute(
            "INSERT OR REPLACE INTO daily_entries (student_id, date, goal_text, goal_completed, "
            "reflection_text, reflection_depth, reflection_confidence, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (student_id, day, goal_text, completed, refl_text, depth, confidence,
             now.isoformat(), now.isoformat()),
        )
    db.commit()

    return {"created": True, "student_id": student_id, "entries_seeded": len(entries)}


def clear_demo(db) -> None:
    """Remove the demo student and all of its entries."""
    row = db.execute("SELECT id FROM users WHERE email = ?", (DEMO_STUDENT["email"],)).fetchone()
    if not row:
        return
    db.execute("DELETE FROM daily_entries WHERE student_id = ?", (row["id"],))
    db.execute("DELETE FROM students WHERE student_id = ?", (row["id"],))
    db.execute("DELETE FROM users WHERE id = ?", (row["id"],))
    db.commit()


if __name__ == "__main__":
    from app import create_app
    from database import get_db, init_db, run_migrations

    app = create_app()
    with app.app_context():
        init_db()
        run_migrations()
        db = get_db()
        if "--reset" in sys.argv:
            clear_demo(db)
            print("[Seed] Demo data cleared.")
        result = seed(db)
        print(f"[Seed] Done: {result}")
