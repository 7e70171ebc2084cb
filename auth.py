"""
User Authentication — Flask-Login blueprint.

Provides JSON register, login, and logout routes.
Uses werkzeug.security for password hashing.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from db_stores import UserStoreDB
from extensions import limiter
from progress_service import ROLE_ADMIN, ROLE_STUDENT, create_user_profile, ensure_student

LOCKOUT_THRESHOLD = 5
LOCKOUT_MINUTES = 15

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class User(UserMixin):
    """Wraps a DB user row for Flask-Login."""

    def __init__(self, id: int, name: str, email: str, role: str = ROLE_STUDENT):
        self.id = id
        self.name = name
        self.email = email
        self.role = role

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    @staticmethod
    def get(user_id: int):
        row = UserStoreDB.get(user_id)
        if row:
            return User(row["id"], row["name"], row["email"], row["role"])
        return None


@login_manager.user_loader
def load_user(user_id):
    return User.get(int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required"}), 401


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _validate_password(password: str) -> str | None:
    """Return an error message if password is too weak, else None."""
    if len(password) < 8:
        return "Password must be at least 8 characters."
    if not any(c.isupper() for c in password):
        return "Password must contain at least one uppercase letter."
    if not any(c.islower() for c in password):
        return "Password must contain at least one lowercase letter."
    if not any(c.isdigit() for c in password):
        return "Password must contain at least one digit."
    return None


def _user_json(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per 15 minutes")
def login():
    data = _payload()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))

    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    row = UserStoreDB.get_by_email(email)
    if not row:
        return jsonify({"error": "Invalid email or password."}), 401

    previous_attempts = row["login_attempts"]
    if row["locked_until"]:
        try:
            remaining = (datetime.fromisoformat(row["locked_until"]) - datetime.now()).total_seconds()
        except ValueError:
            remaining = 0
        if remaining > 0:
            log_event("login_locked", row["id"], f"email={email}")
            return jsonify({
                "error": f"Account temporarily locked. Try again in {math.ceil(remaining / 60)} minute(s).",
            }), 423
        # Lock has expired; count failures afresh
        previous_attempts = 0
        UserStoreDB.record_failed_login(row["id"], 0, "")

    if not row["password_hash"] or not check_password_hash(row["password_hash"], password):
        attempts = previous_attempts + 1
        locked_until = ""
        if attempts >= LOCKOUT_THRESHOLD:
            locked_until = (datetime.now() + timedelta(minutes=LOCKOUT_MINUTES)).isoformat()
        UserStoreDB.record_failed_login(row["id"], attempts, locked_until)
        log_event("login_failed", row["id"], f"email={email} attempts={attempts}")
        return jsonify({"error": "Invalid email or password."}), 401

    UserStoreDB.touch_login(row["id"])
    user = User(row["id"], row["name"], row["email"], row["role"])
    login_user(user, remember=True)
    log_event("login_success", row["id"])
    return jsonify({"success": True, "user": _user_json(user)})


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("3 per hour")
def register():
    if current_user.is_authenticated:
        return jsonify({"error": "Already signed in."}), 400

    data = _payload()
    name = str(data.get("name", "")).strip()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))
    confirm = str(data.get("confirm_password", password))

    if not name or not email or not password:
        return jsonify({"error": "All fields are required."}), 400
    if password != confirm:
        return jsonify({"error": "Passwords do not match."}), 400
    pw_error = _validate_password(password)
    if pw_error:
        return jsonify({"error": pw_error}), 400
    if UserStoreDB.get_by_email(email):
        return jsonify({"error": "An account with this email already exists."}), 409

    role = ROLE_ADMIN if email in current_app.config.get("ADMIN_EMAILS", []) else ROLE_STUDENT
    user_id = create_user_profile(name, email, generate_password_hash(password), role)
    if role == ROLE_STUDENT:
        ensure_student(user_id, name)

    log_event("register", user_id, f"email={email} role={role}")
    user = User(user_id, name, email, role)
    login_user(user, remember=True)
    return jsonify({"success": True, "user": _user_json(user)}), 201


@auth_bp.route("/logout", methods=["GET", "POST"])
@login_required
def logout():
    log_event("logout", current_user.id)
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/api/me")
@login_required
def me():
    return jsonify(_user_json(current_user))
