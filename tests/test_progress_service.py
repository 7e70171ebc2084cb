"""Tests for progress_service — aggregation round-trips, dashboard and user management."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from audit import recent_events
from conftest import add_student, make_record
from db_stores import DailyEntryStoreDB, StudentStoreDB, UserStoreDB
from progress_service import (
    add_or_update_daily_entry,
    badge_progress,
    create_user_profile,
    ensure_student,
    get_admin_dashboard_data,
    get_cached_dashboard,
    get_student_data,
    get_student_data_by_email,
    get_user_profile,
    is_user_admin,
    list_users,
    remove_user,
    update_user_profile,
    verify_user_data_integrity,
)

TODAY = date.today()


def _days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


class TestStudentData:
    def test_new_student_has_zeroed_aggregate(self, db):
        student = get_student_data(1, today=TODAY)
        assert student.streak == 0
        assert student.consistency_score == 0
        assert student.entries == []
        assert len(student.daily_engagement.per_day) == 30

    def test_seed_created_on_first_read(self, db):
        uid = create_user_profile("Lazy", "lazy@example.com")
        assert not StudentStoreDB(uid).exists()
        student, created = ensure_student(uid)
        assert created
        assert student.name == "Lazy"
        assert ensure_student(uid)[1] is False

    def test_unknown_or_admin_user_is_not_a_student(self, db):
        with pytest.raises(LookupError):
            get_student_data(404)
        with pytest.raises(LookupError):
            get_student_data(2)

    def test_entry_upsert_recomputes_and_persists(self, db):
        for n in range(7):
            add_or_update_daily_entry(1, make_record(_days_ago(n), goal=True, depth=4))
        student = add_or_update_daily_entry(1, make_record(TODAY, goal=True, depth=5, quiz=(10, 10)))

        assert student.streak == 7
        assert student.consistency_score == 100
        assert student.badges >= {"streak-7", "consistency-90", "deep-thinker", "quiz-whiz"}
        assert len(student.entries) == 7

        stored = StudentStoreDB(1).load()
        assert stored.streak == 7
        assert stored.badges == student.badges

    def test_badges_survive_broken_streak(self, db):
        for n in range(7):
            add_or_update_daily_entry(1, make_record(_days_ago(n), goal=True))
        later = get_student_data(1, today=TODAY + timedelta(days=5))
        assert later.streak == 0
        assert "streak-7" in later.badges

    def test_replay_ignores_later_records_and_writes_nothing(self, db):
        for n in range(3):
            add_or_update_daily_entry(1, make_record(_days_ago(n), goal=True))
        assert StudentStoreDB(1).load().streak == 3

        past = get_student_data(1, today=_days_ago(1))
        assert past.streak == 2
        assert [r.date for r in past.entries] == [_days_ago(1), _days_ago(2)]
        assert past.daily_engagement.per_day[-1].date == _days_ago(1)

        before_any = get_student_data(1, today=date(2020, 1, 1))
        assert before_any.entries == []
        assert before_any.consistency_score == 0

        stored = StudentStoreDB(1).load()
        assert stored.streak == 3
        assert stored.consistency_score == 100

    def test_lookup_by_email(self, db):
        add_or_update_daily_entry(1, make_record(TODAY, goal=True))
        student = get_student_data_by_email("  Student@Example.com ", today=TODAY)
        assert student.student_id == 1
        assert student.streak == 1
        with pytest.raises(LookupError):
            get_student_data_by_email("nobody@example.com")

    def test_badge_progress(self, db):
        add_or_update_daily_entry(1, make_record(TODAY, quiz=(19, 20)))
        progress = {b["id"]: b for b in badge_progress(get_student_data(1, today=TODAY))}
        assert set(progress) == {"streak-7", "consistency-90", "deep-thinker", "quiz-whiz", "perfect-week"}
        assert progress["quiz-whiz"]["earned"] and progress["quiz-whiz"]["currentlyMet"]
        assert not progress["perfect-week"]["earned"]


class TestAdminDashboard:
    def test_assembles_and_caches(self, db):
        add_student(db, 3, "", email=None)
        DailyEntryStoreDB(1).upsert(make_record(_days_ago(1), goal=True, depth=4, quiz=(9, 10)))
        DailyEntryStoreDB(1).upsert(make_record(_days_ago(2), goal=False, depth=3))

        data = get_admin_dashboard_data(at_risk_limit=5)
        assert data["kpis"] == {"goalCompletion": 50, "avgReflectionDepth": 3.5, "avgTestPerformance": 90}
        assert [s["id"] for s in data["students"]] == [1, 3]
        assert data["students"][1]["name"] == "Anonymous Student"
        assert data["totalStudents"] == 2
        assert data["totalEntries"] == 2
        assert data["engagementData"][3]["reflections"] == 70
        # Student 3 has no reflections at all
        assert {e["studentId"] for e in data["atRiskStudents"]} == {3}

        cached = get_cached_dashboard()
        assert cached["kpis"] == data["kpis"]
        assert cached["lastUpdated"] == data["lastUpdated"]
        assert cached["totalEntries"] == 2

    def test_writes_back_derived_fields(self, db):
        DailyEntryStoreDB(1).upsert(make_record(TODAY, goal=True))
        get_admin_dashboard_data()
        assert StudentStoreDB(1).load().streak == 1

    def test_at_risk_limit(self, db):
        for sid in range(3, 10):
            add_student(db, sid, f"Student {sid}")
        data = get_admin_dashboard_data(at_risk_limit=3)
        assert [e["studentId"] for e in data["atRiskStudents"]] == [1, 3, 4]

    def test_replay_leaves_snapshot_and_students_alone(self, db):
        DailyEntryStoreDB(1).upsert(make_record(TODAY, goal=True, depth=4))
        live = get_admin_dashboard_data()

        replay = get_admin_dashboard_data(today=date(2020, 1, 1))
        assert replay["asOf"] == "2020-01-01"
        assert replay["lastUpdated"] is None
        assert replay["totalEntries"] == 0
        assert replay["kpis"]["goalCompletion"] == 0

        cached = get_cached_dashboard()
        assert cached["lastUpdated"] == live["lastUpdated"]
        assert cached["totalEntries"] == 1
        assert StudentStoreDB(1).load().streak == 1

    def test_no_cache_before_first_build(self, db):
        assert get_cached_dashboard() is None


class TestUserManagement:
    def test_create_rejects_unknown_role(self, db):
        with pytest.raises(ValueError):
            create_user_profile("X", "x@example.com", role="teacher")

    def test_profile_hides_password_hash(self, db):
        profile = get_user_profile(1)
        assert "password_hash" not in profile
        assert profile["email"] == "student@example.com"
        assert get_user_profile(999) is None

    def test_update_profile(self, db):
        user = update_user_profile(1, name=" New Name ", email="NEW@example.com")
        assert user["name"] == "New Name"
        assert user["email"] == "new@example.com"
        with pytest.raises(ValueError):
            update_user_profile(1, name="   ")
        with pytest.raises(ValueError):
            update_user_profile(1, email="admin@example.com")
        with pytest.raises(LookupError):
            update_user_profile(999, name="Ghost")

    def test_is_user_admin(self, db):
        assert is_user_admin(2)
        assert not is_user_admin(1)
        assert not is_user_admin(999)

    def test_list_users_requires_admin(self, db):
        assert len(list_users(2)) == 2
        with pytest.raises(PermissionError):
            list_users(1)

    def test_remove_student(self, db):
        DailyEntryStoreDB(1).upsert(make_record(TODAY, goal=True))
        assert remove_user(1, 2) == {"userId": 1, "entriesRemoved": 1}
        assert UserStoreDB.get(1) is None
        events = recent_events(user_id=2)
        assert events[0]["action"] == "user_removed"
        assert "target=1" in events[0]["detail"]

    def test_remove_user_rules(self, db):
        create_user_profile("Other Admin", "other@example.com", role="admin")
        other = UserStoreDB.get_by_email("other@example.com")["id"]
        with pytest.raises(PermissionError):
            remove_user(2, 1)
        with pytest.raises(LookupError):
            remove_user(999, 2)
        with pytest.raises(PermissionError):
            remove_user(2, 2)
        with pytest.raises(PermissionError):
            remove_user(other, 2)

    def test_integrity_report(self, db):
        assert verify_user_data_integrity(999) == {"exists": False}
        assert verify_user_data_integrity(2)["adminConfirmed"] is True
        assert verify_user_data_integrity(1)["studentSeeded"] is True
        uid = create_user_profile("Fresh", "fresh@example.com")
        assert verify_user_data_integrity(uid)["studentSeeded"] is False
