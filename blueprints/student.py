"""Student-facing routes: own progress, daily entry upsert, badges, engagement."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from analytics import activity_breakdown
from helpers import current_user_id, requested_today
from progress import DailyRecord
from progress_service import (
    add_or_update_daily_entry,
    badge_progress,
    get_student_data,
    update_user_profile,
)

bp = Blueprint("student", __name__)


def _own_student():
    """Current user's aggregate, or an error response tuple."""
    try:
        return get_student_data(current_user_id(), today=requested_today()), None
    except LookupError as e:
        return None, (jsonify({"error": str(e)}), 404)
    except ValueError as e:
        return None, (jsonify({"error": str(e)}), 400)


@bp.route("/api/student")
@login_required
def api_student():
    student, error = _own_student()
    if error:
        return error
    return jsonify(student.to_dict())


@bp.route("/api/entries", methods=["POST"])
@login_required
def api_upsert_entry():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Entry JSON is required"}), 400
    try:
        record = DailyRecord.from_dict(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    try:
        student = add_or_update_daily_entry(current_user_id(), record)
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"success": True, "student": student.to_dict()})


@bp.route("/api/badges")
@login_required
def api_badges():
    student, error = _own_student()
    if error:
        return error
    return jsonify({"badges": badge_progress(student)})


@bp.route("/api/engagement")
@login_required
def api_engagement():
    student, error = _own_student()
    if error:
        return error
    return jsonify({
        "streak": student.streak,
        "consistencyScore": student.consistency_score,
        "metrics": student.daily_engagement.to_dict(),
        "breakdown": activity_breakdown(student.entries, student.daily_engagement),
    })


@bp.route("/api/profile", methods=["PATCH"])
@login_required
def api_update_profile():
    data = request.get_json(silent=True) or {}
    try:
        user = update_user_profile(current_user_id(), name=data.get("name"), email=data.get("email"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"success": True, "user": user})
