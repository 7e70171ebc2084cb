"""
Test fixtures for the Student Progress Dashboard.

Provides app, client, auth_client, admin_client and db fixtures with
file-based SQLite. User 1 is a student, user 2 is an admin.
"""

from __future__ import annotations

import sys
from datetime import date, datetime
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

sys.path.insert(0, str(Path(__file__).parent.parent))

from progress import DailyRecord, Goal, QuizResult, Reflection  # noqa: E402

STUDENT_PASSWORD = "Studentpass1"
ADMIN_PASSWORD = "Adminpass1"


def make_record(day: date, goal=None, depth=None, quiz=None) -> DailyRecord:
    """Shorthand: goal is a completed flag, depth a reflection depth, quiz a (score, total) pair."""
    return DailyRecord(
        date=day,
        goal=Goal(text="goal", completed=goal) if goal is not None else None,
        reflection=Reflection(text="reflection", depth=depth) if depth is not None else None,
        quiz_result=QuizResult(score=quiz[0], total=quiz[1]) if quiz is not None else None,
    )


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "RATELIMIT_ENABLED": False,
        "AT_RISK_LIMIT": 5,
        "ADMIN_EMAILS": ["boss@example.com"],
    })

    with app.app_context():
        from database import get_db, init_db, run_migrations

        init_db()
        run_migrations()

        db = get_db()
        now = datetime.now().isoformat()
        db.execute(
            "INSERT INTO users (id, name, email, password_hash, role, created_at) "
            "VALUES (1, 'Test Student', 'student@example.com', ?, 'student', ?)",
            (generate_password_hash(STUDENT_PASSWORD), now),
        )
        db.execute(
            "INSERT INTO students (student_id, name, created_at) VALUES (1, 'Test Student', ?)",
            (now,),
        )
        db.execute(
            "INSERT INTO users (id, name, email, password_hash, role, created_at) "
            "VALUES (2, 'Test Admin', 'admin@example.com', ?, 'admin', ?)",
            (generate_password_hash(ADMIN_PASSWORD), now),
        )
        db.commit()

    # Yield outside the setup context so each request gets its own g
    yield app


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def auth_client(app):
    """Test client logged in as the student (user 1)."""
    client = app.test_client()
    with client:
        resp = client.post("/login", json={"email": "student@example.com", "password": STUDENT_PASSWORD})
        assert resp.status_code == 200
        yield client


@pytest.fixture
def admin_client(app):
    """Test client logged in as the admin (user 2)."""
    client = app.test_client()
    with client:
        resp = client.post("/login", json={"email": "admin@example.com", "password": ADMIN_PASSWORD})
        assert resp.status_code == 200
        yield client


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()


def add_student(db, user_id: int, name: str, email: str | None = None) -> None:
    """Insert a student user plus its student row."""
    now = datetime.now().isoformat()
    db.execute(
        "INSERT INTO users (id, name, email, password_hash, role, created_at) "
        "VALUES (?, ?, ?, 'hash', 'student', ?)",
        (user_id, name, email or f"student{user_id}@example.com", now),
    )
    db.execute(
        "INSERT INTO students (student_id, name, created_at) VALUES (?, ?, ?)",
        (user_id, name, now),
    )
    db.commit()
