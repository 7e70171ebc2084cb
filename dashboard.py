"""Dashboard Assembly — cross-student KPIs, at-risk flags and weekly trends.

Pure functions over already-aggregated students and their per-student record
lists. Records are always associated with a student through the explicit
``records_by_student`` mapping built by the store.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from analytics import average_quiz_pct, average_reflection_depth, round_half_up
from progress import (
    REASON_LOW_CONSISTENCY,
    REASON_LOW_REFLECTION,
    REASON_MISSED_GOALS,
    REASON_MULTIPLE,
    AtRiskEntry,
    DailyRecord,
    StudentAggregate,
)

MISSED_GOALS_THRESHOLD = 2
LOW_REFLECTION_DEPTH = 2
LOW_CONSISTENCY_SCORE = 60
DEFAULT_AT_RISK_LIMIT = 5
TREND_WEEKS = 4


def missed_goal_count(records: list[DailyRecord]) -> int:
    """Goals that were set but not completed."""
    return sum(1 for r in records if r.goal and not r.goal.completed)


def classify_at_risk(student: StudentAggregate, records: list[DailyRecord]) -> Optional[AtRiskEntry]:
    """Return an AtRiskEntry when any risk condition holds, else None.

    A student with no reflections has an average depth of 0 and is therefore
    flagged for low reflection depth.
    """
    missed = missed_goal_count(records)
    avg_depth = average_reflection_depth(records) or 0.0
    avg_quiz = average_quiz_pct(records) or 0.0

    missed_flag = missed > MISSED_GOALS_THRESHOLD
    depth_flag = avg_depth < LOW_REFLECTION_DEPTH
    consistency_flag = student.consistency_score < LOW_CONSISTENCY_SCORE
    if not (missed_flag or depth_flag or consistency_flag):
        return None

    if missed_flag:
        reason = REASON_MISSED_GOALS
    elif depth_flag:
        reason = REASON_LOW_REFLECTION
    elif consistency_flag:
        reason = REASON_LOW_CONSISTENCY
    else:
        reason = REASON_MULTIPLE

    return AtRiskEntry(
        student_id=student.student_id,
        name=student.name,
        reason=reason,
        missed_goal_count=missed,
        avg_reflection_depth=round_half_up(avg_depth, 1),
        avg_quiz_score_pct=int(round_half_up(avg_quiz)),
    )


def at_risk_students(
    students: list[StudentAggregate],
    records_by_student: dict[int, list[DailyRecord]],
    limit: int = DEFAULT_AT_RISK_LIMIT,
) -> list[AtRiskEntry]:
    """Flag at-risk students, keeping the order of ``students``, capped at ``limit``."""
    flagged = []
    for student in students:
        entry = classify_at_risk(student, records_by_student.get(student.student_id, []))
        if entry is not None:
            flagged.append(entry)
    return flagged[:limit]


def admin_kpis(records: list[DailyRecord]) -> dict:
    """Goal completion, reflection depth and quiz performance across every record."""
    completed = sum(1 for r in records if r.goal and r.goal.completed)
    goal_completion = int(round_half_up(completed / len(records) * 100)) if records else 0
    avg_depth = average_reflection_depth(records)
    avg_quiz = average_quiz_pct(records)
    return {
        "goalCompletion": goal_completion,
        "avgReflectionDepth": round_half_up(avg_depth, 1) if avg_depth is not None else 0,
        "avgTestPerformance": int(round_half_up(avg_quiz)) if avg_quiz is not None else 0,
    }


def weekly_engagement_series(records: list[DailyRecord], today: Optional[date] = None) -> list[dict]:
    """Per-week goal, reflection and quiz figures for the last four weeks.

    "Week 4" is the trailing seven days ending today. Reflection depth is
    scaled to 0-100 (depth x 20) so the three series share one axis.
    """
    end = today if today is not None else date.today()
    series = []
    for week in range(1, TREND_WEEKS + 1):
        week_end = end - timedelta(days=(TREND_WEEKS - week) * 7)
        week_start = week_end - timedelta(days=6)
        bucket = [r for r in records if week_start <= r.date <= week_end]
        kpis = admin_kpis(bucket)
        series.append({
            "name": f"Week {week}",
            "start": week_start.isoformat(),
            "end": week_end.isoformat(),
            "goals": kpis["goalCompletion"],
            "reflections": int(round_half_up(kpis["avgReflectionDepth"] * 20)),
            "quizzes": kpis["avgTestPerformance"],
        })
    return series


def build_admin_dashboard(
    students: list[StudentAggregate],
    records_by_student: dict[int, list[DailyRecord]],
    student_users: list[dict],
    today: Optional[date] = None,
    at_risk_limit: int = DEFAULT_AT_RISK_LIMIT,
) -> dict:
    all_records = [r for records in records_by_student.values() for r in records]
    return {
        "kpis": admin_kpis(all_records),
        "atRiskStudents": [
            e.to_dict() for e in at_risk_students(students, records_by_student, at_risk_limit)
        ],
        "students": [
            {
                "id": u["id"],
                "name": u.get("name") or "Anonymous Student",
                "email": u.get("email") or "No email",
            }
            for u in student_users
        ],
        "engagementData": weekly_engagement_series(all_records, today),
    }
