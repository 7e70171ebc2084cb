"""
SQLite database layer for the Student Progress Dashboard.

Uses raw sqlite3 with WAL mode and parameterized queries.
A schema_version table handles migrations.
"""

from __future__ import annotations

import fcntl
import sqlite3
from datetime import datetime
from pathlib import Path

from flask import current_app, g

DEFAULT_DB_PATH = Path(__file__).parent / "progress.db"


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Users (students and admins)
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    password_hash TEXT,
    role TEXT NOT NULL DEFAULT 'student',
    created_at TEXT NOT NULL DEFAULT '',
    last_login_at TEXT NOT NULL DEFAULT '',
    last_updated_at TEXT NOT NULL DEFAULT '',
    login_attempts INTEGER NOT NULL DEFAULT 0,
    locked_until TEXT NOT NULL DEFAULT ''
);

-- Student seed plus the derived fields from the last recomputation
CREATE TABLE IF NOT EXISTS students (
    student_id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    consistency_score INTEGER NOT NULL DEFAULT 0,
    streak INTEGER NOT NULL DEFAULT 0,
    badges TEXT NOT NULL DEFAULT '[]',
    daily_engagement TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);

-- One record per student per calendar day
CREATE TABLE IF NOT EXISTS daily_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES students(student_id) ON DELETE CASCADE,
    date TEXT NOT NULL,
    goal_text TEXT,
    goal_completed INTEGER,
    reflection_text TEXT,
    reflection_depth INTEGER,
    reflection_confidence TEXT NOT NULL DEFAULT '',
    quiz_score REAL,
    quiz_total REAL,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT '',
    UNIQUE(student_id, date)
);

-- Last assembled admin dashboard
CREATE TABLE IF NOT EXISTS admin_dashboard_cache (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    payload TEXT NOT NULL,
    total_students INTEGER NOT NULL DEFAULT 0,
    total_entries INTEGER NOT NULL DEFAULT 0,
    last_updated TEXT NOT NULL DEFAULT ''
);

-- Audit trail
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    action TEXT NOT NULL,
    detail TEXT NOT NULL DEFAULT '',
    ip_address TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
"""


MIGRATIONS: list[tuple[int, str]] = [
    (1, """
        CREATE INDEX IF NOT EXISTS idx_daily_entries_date ON daily_entries(date);
        CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);
    """),
    (2, """
        CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_log(user_id, created_at);
    """),
]


def get_db():
    """Return a DB connection from Flask g, creating if needed."""
    if "db" not in g:
        db_path = current_app.config.get("DATABASE", str(DEFAULT_DB_PATH))
        g.db = sqlite3.connect(db_path)
        g.db.row_factory = sqlite3.Row
        g.db.execute("PRAGMA journal_mode=WAL")
        g.db.execute("PRAGMA foreign_keys=ON")
    return g.db


def close_db(e=None) -> None:
    """Teardown handler — close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)
    db.commit()


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent race conditions when multiple
    workers start simultaneously.
    """
    db_path = current_app.config.get("DATABASE", str(DEFAULT_DB_PATH))
    lock_file = None

    lock_path = Path(db_path).with_suffix(".migration.lock")
    try:
        lock_file = open(lock_path, "w")
        fcntl.flock(lock_file, fcntl.LOCK_EX)
    except OSError:
        lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                try:
                    db.executescript(sql)
                except sqlite3.OperationalError as e:
                    err_msg = str(e).lower()
                    if "duplicate column" not in err_msg and "already exists" not in err_msg:
                        raise
                db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
                db.commit()
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            app._db_initialized = True
