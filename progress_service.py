"""
Student progress service — load, aggregate, award, persist.

Glue between the stores and the pure aggregation core. Route handlers call
these functions; they never compute aggregates themselves.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from analytics import aggregate_student, eligible_badges
from audit import log_event
from dashboard import DEFAULT_AT_RISK_LIMIT, build_admin_dashboard
from db_stores import (
    AdminDashboardCacheDB,
    DailyEntryStoreDB,
    StudentStoreDB,
    UserStoreDB,
)
from progress import DailyRecord, StudentAggregate, badge_catalog

logger = logging.getLogger(__name__)

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"


# ── Students ─────────────────────────────────────────────────────────


def ensure_student(student_id: int, display_name: Optional[str] = None) -> tuple[StudentAggregate, bool]:
    """Load the student seed, creating it on first access.

    Returns (seed, created). Raises LookupError when no student user has this id.
    """
    store = StudentStoreDB(student_id)
    seed = store.load()
    if seed is not None:
        return seed, False
    user = UserStoreDB.get(student_id)
    if user is None or user["role"] != ROLE_STUDENT:
        raise LookupError(f"No student with id {student_id}")
    name = display_name or user.get("name") or f"Student {student_id}"
    logger.info("Creating student record for user %s", student_id)
    return store.create(name), True


def _as_of(records: list[DailyRecord], today: Optional[date]) -> list[DailyRecord]:
    if today is None:
        return records
    return [r for r in records if r.date <= today]


def get_student_data(
    student_id: int, display_name: Optional[str] = None, today: Optional[date] = None,
) -> StudentAggregate:
    """Return the student's freshly recomputed aggregate.

    Derived fields (consistency, streak, engagement, badges) are written back
    so the admin views and the cached snapshot see the same numbers. Passing
    ``today`` replays the aggregate as of that day: later records are ignored
    and nothing is written.
    """
    seed, _ = ensure_student(student_id, display_name)
    records = _as_of(DailyEntryStoreDB(student_id).entries, today)
    student = aggregate_student(seed, records, today)
    if today is not None:
        return student

    new_badges = student.badges - seed.badges
    if new_badges:
        logger.info("Student %s earned badges: %s", student_id, ", ".join(sorted(new_badges)))

    StudentStoreDB(student_id).save_aggregate(student)
    return student


def get_student_data_by_email(email: str, today: Optional[date] = None) -> StudentAggregate:
    user = UserStoreDB.get_by_email(email.strip().lower())
    if user is None:
        raise LookupError(f"Student not found for email: {email}")
    return get_student_data(user["id"], user["name"], today)


def add_or_update_daily_entry(student_id: int, record: DailyRecord) -> StudentAggregate:
    """Upsert the record for its calendar day and return the refreshed aggregate."""
    ensure_student(student_id)
    DailyEntryStoreDB(student_id).upsert(record)
    logger.info("Saved daily entry for student %s on %s", student_id, record.date.isoformat())
    return get_student_data(student_id)


def badge_progress(student: StudentAggregate) -> list[dict]:
    """Catalog view with earned flags and whether each is currently satisfied."""
    satisfied = eligible_badges(student, student.entries)
    return [
        {**b.to_dict(), "earned": b.id in student.badges, "currentlyMet": b.id in satisfied}
        for b in badge_catalog()
    ]


# ── Admin dashboard ──────────────────────────────────────────────────


def _derived(student: StudentAggregate) -> tuple:
    return student.consistency_score, student.streak, student.badges


def get_admin_dashboard_data(
    today: Optional[date] = None, at_risk_limit: int = DEFAULT_AT_RISK_LIMIT,
) -> dict:
    """Recompute every student and assemble the admin dashboard.

    The result is stored as the cached snapshot before being returned. A
    replay (``today`` given) only counts records up to that day and leaves
    both the student rows and the snapshot untouched.
    """
    replay = today is not None
    records_by_student = {
        sid: _as_of(records, today)
        for sid, records in DailyEntryStoreDB.all_by_student().items()
    }
    students = []
    for seed in StudentStoreDB.all():
        student = aggregate_student(seed, records_by_student.get(seed.student_id, []), today)
        if not replay and _derived(student) != _derived(seed):
            StudentStoreDB(seed.student_id).save_aggregate(student)
        students.append(student)

    data = build_admin_dashboard(
        students,
        records_by_student,
        UserStoreDB.students(),
        today=today,
        at_risk_limit=at_risk_limit,
    )
    total_entries = sum(len(r) for r in records_by_student.values())
    if replay:
        data["lastUpdated"] = None
        data["asOf"] = today.isoformat()
    else:
        data["lastUpdated"] = AdminDashboardCacheDB.save(data, len(students), total_entries)
    data["totalStudents"] = len(students)
    data["totalEntries"] = total_entries
    logger.info(
        "Admin dashboard assembled: %d students, %d entries, %d at risk%s",
        len(students), total_entries, len(data["atRiskStudents"]),
        f" (as of {today.isoformat()})" if replay else "",
    )
    return data


def get_cached_dashboard() -> Optional[dict]:
    return AdminDashboardCacheDB.load()


# ── User profiles & management ───────────────────────────────────────


def create_user_profile(name: str, email: str, password_hash: str = "", role: str = ROLE_STUDENT) -> int:
    if role not in (ROLE_STUDENT, ROLE_ADMIN):
        raise ValueError(f"Unknown role: {role}")
    user_id = UserStoreDB.create(name or "Unknown User", email, password_hash, role)
    logger.info("Created %s profile for %s", role, email)
    return user_id


def get_user_profile(user_id: int) -> Optional[dict]:
    """Return the user's profile and stamp the login time."""
    user = UserStoreDB.get(user_id)
    if user is None:
        return None
    UserStoreDB.touch_login(user_id)
    user.pop("password_hash", None)
    return user


def update_user_profile(user_id: int, name: Optional[str] = None, email: Optional[str] = None) -> dict:
    if UserStoreDB.get(user_id) is None:
        raise LookupError(f"No user with id {user_id}")
    if name is not None and not name.strip():
        raise ValueError("Name cannot be empty")
    if email is not None:
        email = email.strip().lower()
        if not email:
            raise ValueError("Email cannot be empty")
        owner = UserStoreDB.get_by_email(email)
        if owner is not None and owner["id"] != user_id:
            raise ValueError("Email is already in use")
    UserStoreDB.update_profile(
        user_id,
        name=name.strip() if name is not None else None,
        email=email,
    )
    user = UserStoreDB.get(user_id)
    user.pop("password_hash", None)
    return user


def is_user_admin(user_id: int) -> bool:
    user = UserStoreDB.get(user_id)
    return bool(user and user["role"] == ROLE_ADMIN)


def _require_admin(admin_id: int) -> None:
    if not is_user_admin(admin_id):
        raise PermissionError("Only admins can manage users")


def list_users(admin_id: int) -> list[dict]:
    _require_admin(admin_id)
    return UserStoreDB.list_all()


def remove_user(user_id: int, admin_id: int) -> dict:
    """Erase a student account and all of its data.

    Admins cannot remove themselves or other admins.
    """
    _require_admin(admin_id)
    target = UserStoreDB.get(user_id)
    if target is None:
        raise LookupError("User not found")
    if user_id == admin_id:
        raise PermissionError("Cannot remove your own admin account")
    if target["role"] == ROLE_ADMIN:
        raise PermissionError("Cannot remove other admin users")

    removed = UserStoreDB.delete_with_data(user_id)
    log_event("user_removed", admin_id, f"target={user_id} email={target['email']} entries={removed}")
    logger.info("Admin %s removed user %s (%d entries)", admin_id, user_id, removed)
    return {"userId": user_id, "entriesRemoved": removed}


def verify_user_data_integrity(user_id: int) -> dict:
    """Report whether the user's rows are consistent with their role."""
    user = UserStoreDB.get(user_id)
    if user is None:
        logger.warning("User %s not found during integrity check", user_id)
        return {"exists": False}
    report = {"exists": True, "role": user["role"], "email": user["email"]}
    if user["role"] == ROLE_ADMIN:
        report["adminConfirmed"] = True
    else:
        # Student rows are created lazily on first read
        report["studentSeeded"] = StudentStoreDB(user_id).exists()
    return report
