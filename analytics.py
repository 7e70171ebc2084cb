"""Aggregation core — consistency, streaks, 30-day engagement and badges.

All functions are pure: they take a list of DailyRecord in any order and an
optional ``today`` (defaults to the local calendar day) and never touch the
database. Persistence lives in db_stores; orchestration in progress_service.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from progress import DailyEngagement, DailyRecord, EngagementMetrics, StudentAggregate

ENGAGEMENT_WINDOW_DAYS = 30
CONSISTENCY_WINDOW = 30

# Engagement score weights
GOAL_POINTS = 30
GOAL_COMPLETED_BONUS = 10
REFLECTION_POINTS_PER_DEPTH = 10
DEEP_REFLECTION_DEPTH = 4
DEEP_REFLECTION_BONUS = 5
QUIZ_MAX_POINTS = 25
QUIZ_EXCELLENT_PCT = 90
QUIZ_EXCELLENT_BONUS = 5
MAX_DAILY_SCORE = 100

# Badge thresholds
STREAK_BADGE_DAYS = 7
CONSISTENCY_BADGE_SCORE = 90
DEEP_THINKER_MIN_REFLECTIONS = 3
DEEP_THINKER_AVG_DEPTH = 4
QUIZ_WHIZ_AVG_PCT = 90

WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with .5 going up, unlike the banker's rounding of round()."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def _today(today: Optional[date]) -> date:
    return today if today is not None else date.today()


def _by_day(records: Iterable[DailyRecord]) -> dict[date, list[DailyRecord]]:
    grouped: dict[date, list[DailyRecord]] = defaultdict(list)
    for r in records:
        grouped[r.date].append(r)
    return grouped


# ── Consistency & Streak ─────────────────────────────────────


def consistency_score(records: list[DailyRecord]) -> int:
    """Percentage of active records among the most recent min(30, n) records."""
    if not records:
        return 0
    window = sorted(records, key=lambda r: r.date)[-CONSISTENCY_WINDOW:]
    active = sum(1 for r in window if r.is_active)
    return int(round_half_up(100 * active / len(window)))


def current_streak(records: list[DailyRecord], today: Optional[date] = None) -> int:
    """Consecutive active days ending today.

    Walks backwards one calendar day at a time and stops at the first day
    with no record or with only inactive records.
    """
    grouped = _by_day(records)
    day = _today(today)
    streak = 0
    while True:
        day_records = grouped.get(day)
        if not day_records or not any(r.is_active for r in day_records):
            break
        streak += 1
        day -= timedelta(days=1)
    return streak


def calculate_consistency_and_streak(
    records: list[DailyRecord], today: Optional[date] = None,
) -> tuple[int, int]:
    if not records:
        return 0, 0
    return consistency_score(records), current_streak(records, today)


# ── Engagement ───────────────────────────────────────────────


def score_day(day: date, records: list[DailyRecord]) -> DailyEngagement:
    """Fold every record on ``day`` into one capped engagement score."""
    result = DailyEngagement(date=day)
    score = 0
    for r in records:
        if r.goal:
            result.has_goal = True
            result.activity_count += 1
            score += GOAL_POINTS
            if r.goal.completed:
                score += GOAL_COMPLETED_BONUS
        if r.reflection:
            result.has_reflection = True
            result.activity_count += 1
            score += r.reflection.depth * REFLECTION_POINTS_PER_DEPTH
            if r.reflection.depth >= DEEP_REFLECTION_DEPTH:
                score += DEEP_REFLECTION_BONUS
        if r.quiz_result:
            result.has_quiz = True
            result.activity_count += 1
            pct = r.quiz_result.ratio * 100
            score += int(round_half_up(pct * QUIZ_MAX_POINTS / 100))
            if pct >= QUIZ_EXCELLENT_PCT:
                score += QUIZ_EXCELLENT_BONUS
    result.score = min(MAX_DAILY_SCORE, score)
    return result


def _trend_pct(recent: list[DailyEngagement], prior: list[DailyEngagement]) -> float:
    recent_avg = sum(d.score for d in recent) / len(recent)
    prior_avg = sum(d.score for d in prior) / len(prior)
    if prior_avg == 0:
        return 0.0
    return round_half_up((recent_avg - prior_avg) / prior_avg * 100, 1)


def calculate_daily_engagement(
    records: list[DailyRecord], today: Optional[date] = None,
) -> EngagementMetrics:
    """Engagement for the trailing 30 calendar days, oldest first.

    Always yields 30 entries; days without records score 0.
    """
    end = _today(today)
    grouped = _by_day(records)
    per_day = [
        score_day(day, grouped.get(day, []))
        for day in (end - timedelta(days=offset)
                    for offset in range(ENGAGEMENT_WINDOW_DAYS - 1, -1, -1))
    ]

    streak_days = 0
    for d in reversed(per_day):
        if d.score <= 0:
            break
        streak_days += 1

    return EngagementMetrics(
        per_day=per_day,
        average_daily=round_half_up(sum(d.score for d in per_day) / ENGAGEMENT_WINDOW_DAYS, 1),
        active_day_count=sum(1 for d in per_day if d.score > 0),
        streak_days=streak_days,
        weekly_trend_pct=_trend_pct(per_day[-7:], per_day[-14:-7]),
        monthly_trend_pct=_trend_pct(per_day[-14:], per_day[-28:-14]),
    )


def engagement_level(score: float) -> str:
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    return "low"


def activity_breakdown(records: list[DailyRecord], metrics: EngagementMetrics) -> dict:
    """Weekday and month activity patterns for the engagement panel."""
    weekly = {name: 0 for name in WEEKDAY_NAMES}
    monthly: dict[str, dict[str, int]] = {}
    for r in sorted(records, key=lambda r: r.date):
        weekly[WEEKDAY_NAMES[r.date.weekday()]] += 1
        bucket = monthly.setdefault(r.date.strftime("%Y-%m"), {"goals": 0, "reflections": 0, "quizzes": 0})
        if r.goal:
            bucket["goals"] += 1
        if r.reflection:
            bucket["reflections"] += 1
        if r.quiz_result:
            bucket["quizzes"] += 1

    most_active = None
    if records:
        most_active = max(WEEKDAY_NAMES, key=lambda name: weekly[name])

    return {
        "weekdayActivity": weekly,
        "monthlyActivity": monthly,
        "mostActiveDay": most_active,
        "avgActivitiesPerWeek": round_half_up(metrics.active_day_count / ENGAGEMENT_WINDOW_DAYS * 7, 1),
        "engagementLevel": engagement_level(metrics.average_daily),
    }


# ── Badges ───────────────────────────────────────────────────


def average_reflection_depth(records: list[DailyRecord]) -> Optional[float]:
    depths = [r.reflection.depth for r in records if r.reflection]
    return sum(depths) / len(depths) if depths else None


def average_quiz_pct(records: list[DailyRecord]) -> Optional[float]:
    ratios = [r.quiz_result.ratio for r in records if r.quiz_result]
    return sum(ratios) / len(ratios) * 100 if ratios else None


def eligible_badges(student: StudentAggregate, records: list[DailyRecord]) -> set[str]:
    """Badges whose trigger condition holds right now.

    ``perfect-week`` is in the catalog but has no evaluated criterion.
    """
    earned = set()
    if student.streak >= STREAK_BADGE_DAYS:
        earned.add("streak-7")
    if student.consistency_score >= CONSISTENCY_BADGE_SCORE:
        earned.add("consistency-90")

    reflections = [r for r in records if r.reflection]
    if len(reflections) >= DEEP_THINKER_MIN_REFLECTIONS:
        if average_reflection_depth(reflections) >= DEEP_THINKER_AVG_DEPTH:
            earned.add("deep-thinker")

    avg_quiz = average_quiz_pct(records)
    if avg_quiz is not None and avg_quiz >= QUIZ_WHIZ_AVG_PCT:
        earned.add("quiz-whiz")
    return earned


def award_badges(student: StudentAggregate, records: list[DailyRecord]) -> set[str]:
    """Previously earned badges plus any newly eligible ones. Never removes."""
    return set(student.badges) | eligible_badges(student, records)


def aggregate_student(
    student: StudentAggregate, records: list[DailyRecord], today: Optional[date] = None,
) -> StudentAggregate:
    """Recompute every derived field of ``student`` from ``records``.

    Returns a new aggregate; entries are ordered newest first.
    """
    consistency, streak = calculate_consistency_and_streak(records, today)
    result = StudentAggregate(
        student_id=student.student_id,
        name=student.name,
        consistency_score=consistency,
        streak=streak,
        badges=set(student.badges),
        entries=sorted(records, key=lambda r: r.date, reverse=True),
        daily_engagement=calculate_daily_engagement(records, today),
    )
    result.badges = award_badges(result, records)
    return result
