"""
DB-backed store classes for the Student Progress Dashboard.

Each store reads/writes SQLite through get_db(). sqlite3 failures are logged
and re-raised as FetchError or SaveError so callers can tell a failed read
from a failed write without knowing about the database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from database import get_db
from progress import (
    DailyRecord,
    EngagementMetrics,
    Goal,
    QuizResult,
    Reflection,
    StudentAggregate,
    normalize_date,
    sorted_badge_ids,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for persistence failures."""


class FetchError(StoreError):
    pass


class SaveError(StoreError):
    pass


@contextmanager
def _fetching(what: str):
    try:
        yield
    except sqlite3.Error as e:
        logger.error("Failed to fetch %s: %s", what, e, exc_info=True)
        raise FetchError(f"Failed to fetch {what}") from e


@contextmanager
def _saving(what: str):
    try:
        yield
    except sqlite3.Error as e:
        logger.error("Failed to save %s: %s", what, e, exc_info=True)
        try:
            get_db().rollback()
        except sqlite3.Error:
            logger.warning("Rollback after failed save of %s also failed", what)
        raise SaveError(f"Failed to save {what}") from e


def _record_from_row(row) -> DailyRecord:
    goal = None
    if row["goal_text"] is not None:
        goal = Goal(text=row["goal_text"], completed=bool(row["goal_completed"]))
    reflection = None
    if row["reflection_depth"] is not None:
        reflection = Reflection(
            text=row["reflection_text"] or "",
            depth=row["reflection_depth"],
            confidence_level=row["reflection_confidence"] or "",
        )
    quiz = None
    if row["quiz_total"] is not None:
        quiz = QuizResult(score=row["quiz_score"] or 0, total=row["quiz_total"])
    return DailyRecord(
        date=normalize_date(row["date"]),
        goal=goal,
        reflection=reflection,
        quiz_result=quiz,
    )


# ── Users ────────────────────────────────────────────────────────────


class UserStoreDB:
    """User accounts: identity, role and login bookkeeping."""

    @staticmethod
    def create(name: str, email: str, password_hash: str = "", role: str = "student") -> int:
        now = datetime.now().isoformat()
        with _saving("user profile"):
            db = get_db()
            cur = db.execute(
                "INSERT INTO users (name, email, password_hash, role, created_at, last_login_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (name, email, password_hash, role, now, now),
            )
            db.commit()
        return cur.lastrowid

    @staticmethod
    def get(user_id: int) -> Optional[dict]:
        with _fetching("user profile"):
            row = get_db().execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def get_by_email(email: str) -> Optional[dict]:
        with _fetching("user profile"):
            row = get_db().execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def update_profile(user_id: int, name: Optional[str] = None, email: Optional[str] = None) -> None:
        fields, params = [], []
        if name is not None:
            fields.append("name = ?")
            params.append(name)
        if email is not None:
            fields.append("email = ?")
            params.append(email)
        fields.append("last_updated_at = ?")
        params.append(datetime.now().isoformat())
        with _saving("user profile"):
            db = get_db()
            db.execute(f"UPDATE users SET {', '.join(fields)} WHERE id = ?", (*params, user_id))
            if name is not None:
                db.execute("UPDATE students SET name = ? WHERE student_id = ?", (name, user_id))
            db.commit()

    @staticmethod
    def touch_login(user_id: int) -> None:
        with _saving("user profile"):
            db = get_db()
            db.execute(
                "UPDATE users SET last_login_at = ?, login_attempts = 0, locked_until = '' WHERE id = ?",
                (datetime.now().isoformat(), user_id),
            )
            db.commit()

    @staticmethod
    def record_failed_login(user_id: int, attempts: int, locked_until: str = "") -> None:
        with _saving("user profile"):
            db = get_db()
            db.execute(
                "UPDATE users SET login_attempts = ?, locked_until = ? WHERE id = ?",
                (attempts, locked_until, user_id),
            )
            db.commit()

    @staticmethod
    def list_all() -> list[dict]:
        with _fetching("users"):
            rows = get_db().execute(
                "SELECT id, name, email, role, created_at, last_login_at FROM users "
                "ORDER BY name COLLATE NOCASE, id"
            ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def students() -> list[dict]:
        with _fetching("students"):
            rows = get_db().execute(
                "SELECT id, name, email FROM users WHERE role = 'student' ORDER BY id"
            ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def delete_with_data(user_id: int) -> int:
        """Erase a user and everything derived from them. Returns entries removed."""
        with _saving("user removal"):
            db = get_db()
            cur = db.execute("DELETE FROM daily_entries WHERE student_id = ?", (user_id,))
            removed = cur.rowcount
            db.execute("DELETE FROM students WHERE student_id = ?", (user_id,))
            db.execute("DELETE FROM users WHERE id = ?", (user_id,))
            db.commit()
        return removed


# ── Students ─────────────────────────────────────────────────────────


def _student_from_row(row) -> StudentAggregate:
    engagement = None
    if row["daily_engagement"]:
        engagement = EngagementMetrics.from_dict(json.loads(row["daily_engagement"]))
    return StudentAggregate(
        student_id=row["student_id"],
        name=row["name"],
        consistency_score=row["consistency_score"],
        streak=row["streak"],
        badges=set(json.loads(row["badges"])),
        daily_engagement=engagement,
    )


class StudentStoreDB:
    """Student seed rows and the cached output of the last aggregation."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    def load(self) -> Optional[StudentAggregate]:
        with _fetching("student data"):
            row = get_db().execute(
                "SELECT * FROM students WHERE student_id = ?", (self.student_id,),
            ).fetchone()
        return _student_from_row(row) if row else None

    def exists(self) -> bool:
        with _fetching("student data"):
            row = get_db().execute(
                "SELECT 1 FROM students WHERE student_id = ?", (self.student_id,),
            ).fetchone()
        return row is not None

    def create(self, name: str) -> StudentAggregate:
        now = datetime.now().isoformat()
        with _saving("student data"):
            db = get_db()
            db.execute(
                "INSERT OR IGNORE INTO students (student_id, name, created_at, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (self.student_id, name, now, now),
            )
            db.commit()
        return StudentAggregate(student_id=self.student_id, name=name)

    def save_aggregate(self, student: StudentAggregate) -> None:
        engagement = ""
        if student.daily_engagement is not None:
            engagement = json.dumps(student.daily_engagement.to_dict())
        with _saving("student data"):
            db = get_db()
            db.execute(
                "UPDATE students SET consistency_score = ?, streak = ?, badges = ?, "
                "daily_engagement = ?, updated_at = ? WHERE student_id = ?",
                (student.consistency_score, student.streak,
                 json.dumps(sorted_badge_ids(student.badges)), engagement,
                 datetime.now().isoformat(), self.student_id),
            )
            db.commit()

    @staticmethod
    def all() -> list[StudentAggregate]:
        with _fetching("students"):
            rows = get_db().execute("SELECT * FROM students ORDER BY student_id").fetchall()
        return [_student_from_row(r) for r in rows]


# ── Daily entries ────────────────────────────────────────────────────


class DailyEntryStoreDB:
    """Daily records for one student, one row per calendar day."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    @property
    def entries(self) -> list[DailyRecord]:
        """All records, newest first."""
        with _fetching("daily entries"):
            rows = get_db().execute(
                "SELECT * FROM daily_entries WHERE student_id = ? ORDER BY date DESC",
                (self.student_id,),
            ).fetchall()
        return [_record_from_row(r) for r in rows]

    def count(self) -> int:
        with _fetching("daily entries"):
            row = get_db().execute(
                "SELECT COUNT(*) AS n FROM daily_entries WHERE student_id = ?", (self.student_id,),
            ).fetchone()
        return row["n"]

    def upsert(self, record: DailyRecord) -> None:
        """Insert or replace the record for ``record.date`` (last writer wins)."""
        goal, refl, quiz = record.goal, record.reflection, record.quiz_result
        now = datetime.now().isoformat()
        with _saving("daily entry"):
            db = get_db()
            db.execute(
                "INSERT INTO daily_entries (student_id, date, goal_text, goal_completed, "
                "reflection_text, reflection_depth, reflection_confidence, quiz_score, quiz_total, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(student_id, date) DO UPDATE SET "
                "goal_text = excluded.goal_text, goal_completed = excluded.goal_completed, "
                "reflection_text = excluded.reflection_text, "
                "reflection_depth = excluded.reflection_depth, "
                "reflection_confidence = excluded.reflection_confidence, "
                "quiz_score = excluded.quiz_score, quiz_total = excluded.quiz_total, "
                "updated_at = excluded.updated_at",
                (self.student_id, record.date.isoformat(),
                 goal.text if goal else None,
                 int(goal.completed) if goal else None,
                 refl.text if refl else None,
                 refl.depth if refl else None,
                 refl.confidence_level if refl else "",
                 quiz.score if quiz else None,
                 quiz.total if quiz else None,
                 now, now),
            )
            db.commit()

    @staticmethod
    def all_by_student() -> dict[int, list[DailyRecord]]:
        """Every record in the store grouped by owning student."""
        with _fetching("daily entries"):
            rows = get_db().execute(
                "SELECT * FROM daily_entries ORDER BY student_id, date DESC"
            ).fetchall()
        grouped: dict[int, list[DailyRecord]] = defaultdict(list)
        for r in rows:
            grouped[r["student_id"]].append(_record_from_row(r))
        return dict(grouped)


# ── Admin dashboard snapshot ─────────────────────────────────────────


class AdminDashboardCacheDB:
    """Single-row snapshot of the last assembled admin dashboard."""

    @staticmethod
    def save(payload: dict, total_students: int, total_entries: int) -> str:
        now = datetime.now().isoformat()
        with _saving("admin dashboard"):
            db = get_db()
            db.execute(
                "INSERT INTO admin_dashboard_cache (id, payload, total_students, total_entries, last_updated) "
                "VALUES (1, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, "
                "total_students = excluded.total_students, "
                "total_entries = excluded.total_entries, last_updated = excluded.last_updated",
                (json.dumps(payload), total_students, total_entries, now),
            )
            db.commit()
        return now

    @staticmethod
    def load() -> Optional[dict]:
        with _fetching("admin dashboard"):
            row = get_db().execute("SELECT * FROM admin_dashboard_cache WHERE id = 1").fetchone()
        if not row:
            return None
        return {
            **json.loads(row["payload"]),
            "lastUpdated": row["last_updated"],
            "totalStudents": row["total_students"],
            "totalEntries": row["total_entries"],
        }
