"""Admin routes: dashboard KPIs, at-risk list, student drill-down, user management."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from analytics import activity_breakdown
from audit import recent_events
from helpers import admin_required, current_user_id, requested_today
from progress_service import (
    get_admin_dashboard_data,
    get_cached_dashboard,
    get_student_data,
    get_student_data_by_email,
    list_users,
    remove_user,
    verify_user_data_integrity,
)

bp = Blueprint("admin", __name__)


@bp.route("/api/admin/dashboard")
@admin_required
def api_admin_dashboard():
    try:
        today = requested_today()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    data = get_admin_dashboard_data(
        today=today, at_risk_limit=current_app.config.get("AT_RISK_LIMIT", 5),
    )
    return jsonify(data)


@bp.route("/api/admin/dashboard/cached")
@admin_required
def api_admin_dashboard_cached():
    data = get_cached_dashboard()
    if data is None:
        return jsonify({"error": "No dashboard snapshot yet"}), 404
    return jsonify(data)


@bp.route("/api/admin/students/<int:student_id>")
@admin_required
def api_admin_student(student_id):
    try:
        student = get_student_data(student_id, today=requested_today())
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    data = student.to_dict()
    data["breakdown"] = activity_breakdown(student.entries, student.daily_engagement)
    return jsonify(data)


@bp.route("/api/admin/students/lookup")
@admin_required
def api_admin_student_lookup():
    email = request.args.get("email", "")
    if not email:
        return jsonify({"error": "email is required"}), 400
    try:
        student = get_student_data_by_email(email)
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(student.to_dict())


@bp.route("/api/admin/users")
@admin_required
def api_admin_users():
    return jsonify({"users": list_users(current_user_id())})


@bp.route("/api/admin/users/<int:user_id>", methods=["DELETE"])
@admin_required
def api_admin_remove_user(user_id):
    try:
        result = remove_user(user_id, current_user_id())
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionError as e:
        return jsonify({"error": str(e)}), 403
    return jsonify({"success": True, **result})


@bp.route("/api/admin/users/<int:user_id>/integrity")
@admin_required
def api_admin_user_integrity(user_id):
    return jsonify(verify_user_data_integrity(user_id))


@bp.route("/api/admin/audit")
@admin_required
def api_admin_audit():
    user_id = request.args.get("user_id", type=int)
    limit = max(1, min(request.args.get("limit", 50, type=int), 200))
    return jsonify({"events": recent_events(user_id, limit)})
