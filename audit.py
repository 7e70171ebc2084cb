"""
Audit logging — records security-relevant events.

Events are written to both the audit_log table and structured logging.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from flask import has_request_context, request

from database import get_db

logger = logging.getLogger(__name__)


def log_event(action: str, user_id: int | None = None, detail: str = "") -> None:
    """Insert an audit log entry and emit a structured log line."""
    ip = (request.remote_addr or "") if has_request_context() else ""
    ua = request.headers.get("User-Agent", "") if has_request_context() else ""
    now = datetime.now().isoformat()

    try:
        db = get_db()
        db.execute(
            "INSERT INTO audit_log (user_id, action, detail, ip_address, user_agent, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, action, detail, ip, ua, now),
        )
        db.commit()
    except sqlite3.Error:
        # Don't let audit failures break the request
        logger.warning("audit: could not persist %s for user_id=%s", action, user_id, exc_info=True)

    logger.info("audit: %s user_id=%s detail=%s ip=%s", action, user_id, detail, ip)


def recent_events(user_id: int | None = None, limit: int = 50) -> list[dict]:
    db = get_db()
    if user_id is None:
        rows = db.execute(
            "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,),
        ).fetchall()
    else:
        rows = db.execute(
            "SELECT * FROM audit_log WHERE user_id = ? ORDER BY id DESC LIMIT ?", (user_id, limit),
        ).fetchall()
    return [dict(r) for r in rows]
