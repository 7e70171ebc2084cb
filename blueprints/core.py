"""Health checks and application-wide error handlers."""

from __future__ import annotations

import logging
import sqlite3
import time

from flask import Blueprint, jsonify

from db_stores import FetchError, SaveError

logger = logging.getLogger(__name__)

bp = Blueprint("core", __name__)

_start_time = time.time()


@bp.app_errorhandler(FetchError)
def handle_fetch_error(exc):
    return jsonify({"error": str(exc) or "Failed to fetch data"}), 503


@bp.app_errorhandler(SaveError)
def handle_save_error(exc):
    return jsonify({"error": str(exc) or "Failed to save data"}), 503


@bp.app_errorhandler(PermissionError)
def handle_permission_error(exc):
    return jsonify({"error": str(exc) or "Forbidden"}), 403


@bp.app_errorhandler(404)
def handle_not_found(exc):
    return jsonify({"error": "Not found"}), 404


@bp.app_errorhandler(429)
def handle_rate_limited(exc):
    return jsonify({"error": "Too many requests"}), 429


# ── Health checks ─────────────────────────────────────────

@bp.route("/health")
def health():
    uptime = int(time.time() - _start_time)
    return jsonify({"status": "ok", "uptime_seconds": uptime})


@bp.route("/ready")
def ready():
    try:
        from database import get_db
        db = get_db()
        db.execute("SELECT 1").fetchone()
        return jsonify({"status": "ready"}), 200
    except sqlite3.Error as exc:
        logger.error("Readiness check failed: %s", exc, exc_info=True)
        return jsonify({"status": "not_ready"}), 503
