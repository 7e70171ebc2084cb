"""Tests for the SQLite-backed stores."""

from __future__ import annotations

from datetime import date

import pytest

from analytics import aggregate_student
from conftest import add_student, make_record
from db_stores import (
    AdminDashboardCacheDB,
    DailyEntryStoreDB,
    FetchError,
    SaveError,
    StoreError,
    StudentStoreDB,
    UserStoreDB,
)

TODAY = date(2026, 3, 15)


class TestDailyEntryStore:
    def test_upsert_replaces_same_day(self, db):
        store = DailyEntryStoreDB(1)
        store.upsert(make_record(TODAY, goal=False))
        store.upsert(make_record(TODAY, depth=3, quiz=(4, 5)))
        assert store.count() == 1
        [record] = store.entries
        assert record.goal is None
        assert record.reflection.depth == 3
        assert record.quiz_result.ratio == 0.8

    def test_entries_newest_first(self, db):
        store = DailyEntryStoreDB(1)
        for day in (date(2026, 3, 1), date(2026, 3, 10), date(2026, 3, 5)):
            store.upsert(make_record(day, goal=True))
        assert [r.date for r in store.entries] == [date(2026, 3, 10), date(2026, 3, 5), date(2026, 3, 1)]

    def test_goal_completed_flag_roundtrips(self, db):
        store = DailyEntryStoreDB(1)
        store.upsert(make_record(TODAY, goal=False))
        assert store.entries[0].goal.completed is False

    def test_all_by_student(self, db):
        add_student(db, 3, "Other")
        DailyEntryStoreDB(1).upsert(make_record(TODAY, goal=True))
        DailyEntryStoreDB(3).upsert(make_record(TODAY, depth=2))
        DailyEntryStoreDB(3).upsert(make_record(date(2026, 3, 14), depth=4))
        grouped = DailyEntryStoreDB.all_by_student()
        assert set(grouped) == {1, 3}
        assert len(grouped[3]) == 2
        assert grouped[1][0].goal.completed is True

    def test_unknown_student_raises_save_error(self, db):
        with pytest.raises(SaveError):
            DailyEntryStoreDB(999).upsert(make_record(TODAY, goal=True))

    def test_missing_table_raises_fetch_error(self, db):
        db.execute("DROP TABLE daily_entries")
        db.commit()
        with pytest.raises(FetchError):
            DailyEntryStoreDB(1).entries
        with pytest.raises(StoreError):
            DailyEntryStoreDB.all_by_student()


class TestStudentStore:
    def test_save_and_load_aggregate(self, db):
        records = [make_record(TODAY, goal=True, depth=4)]
        seed = StudentStoreDB(1).load()
        student = aggregate_student(seed, records, TODAY)
        student.badges.add("quiz-whiz")
        StudentStoreDB(1).save_aggregate(student)

        loaded = StudentStoreDB(1).load()
        assert loaded.streak == 1
        assert loaded.consistency_score == 100
        assert loaded.badges == {"consistency-90", "quiz-whiz"}
        assert loaded.daily_engagement.to_dict() == student.daily_engagement.to_dict()

    def test_create_is_idempotent(self, db):
        UserStoreDB.create("New", "new@example.com")
        user = UserStoreDB.get_by_email("new@example.com")
        store = StudentStoreDB(user["id"])
        assert not store.exists()
        store.create("New")
        store.create("Renamed")
        assert store.exists()
        assert store.load().name == "New"

    def test_all_ordered_by_id(self, db):
        add_student(db, 7, "Zed")
        add_student(db, 4, "Amy")
        assert [s.student_id for s in StudentStoreDB.all()] == [1, 4, 7]

    def test_missing_student(self, db):
        assert StudentStoreDB(42).load() is None


class TestUserStore:
    def test_create_and_lookup(self, db):
        uid = UserStoreDB.create("Bea", "bea@example.com", "hash", "student")
        assert UserStoreDB.get(uid)["email"] == "bea@example.com"
        assert UserStoreDB.get_by_email("bea@example.com")["id"] == uid
        assert UserStoreDB.get(9999) is None

    def test_duplicate_email_raises(self, db):
        with pytest.raises(SaveError):
            UserStoreDB.create("Dup", "student@example.com")

    def test_update_profile_renames_student_row(self, db):
        UserStoreDB.update_profile(1, name="Renamed Student")
        assert UserStoreDB.get(1)["name"] == "Renamed Student"
        assert StudentStoreDB(1).load().name == "Renamed Student"

    def test_failed_logins_reset_on_touch(self, db):
        UserStoreDB.record_failed_login(1, 3, "2099-01-01T00:00:00")
        assert UserStoreDB.get(1)["login_attempts"] == 3
        UserStoreDB.touch_login(1)
        user = UserStoreDB.get(1)
        assert user["login_attempts"] == 0
        assert user["locked_until"] == ""

    def test_students_excludes_admins(self, db):
        assert [u["id"] for u in UserStoreDB.students()] == [1]
        assert [u["name"] for u in UserStoreDB.list_all()] == ["Test Admin", "Test Student"]

    def test_delete_with_data(self, db):
        store = DailyEntryStoreDB(1)
        store.upsert(make_record(TODAY, goal=True))
        store.upsert(make_record(date(2026, 3, 14), goal=True))
        assert UserStoreDB.delete_with_data(1) == 2
        assert UserStoreDB.get(1) is None
        assert StudentStoreDB(1).load() is None
        assert store.count() == 0


class TestAdminDashboardCache:
    def test_empty(self, db):
        assert AdminDashboardCacheDB.load() is None

    def test_save_overwrites_single_row(self, db):
        AdminDashboardCacheDB.save({"kpis": {"goalCompletion": 10}}, 1, 2)
        stamp = AdminDashboardCacheDB.save({"kpis": {"goalCompletion": 55}}, 3, 9)
        cached = AdminDashboardCacheDB.load()
        assert cached["kpis"]["goalCompletion"] == 55
        assert cached["totalStudents"] == 3
        assert cached["totalEntries"] == 9
        assert cached["lastUpdated"] == stamp
        count = db.execute("SELECT COUNT(*) AS n FROM admin_dashboard_cache").fetchone()["n"]
        assert count == 1
