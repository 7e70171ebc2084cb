"""
Shared helpers used across blueprints.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from functools import wraps
from typing import Any

from flask import jsonify, request
from flask_login import current_user

from auth import login_manager


def current_user_id() -> int:
    return int(current_user.id)


def admin_required(f: Callable) -> Callable:
    """Decorator that requires an authenticated user with the admin role."""
    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if getattr(current_user, "role", "student") != "admin":
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated


def requested_today() -> date | None:
    """Optional ``?today=YYYY-MM-DD`` override, for replaying a past dashboard."""
    raw = request.args.get("today", "")
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"invalid today parameter: {raw!r}") from None
