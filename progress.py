"""
Student progress data model: daily records, derived aggregates and the badge catalog.

Daily records are what a student logs (goal, reflection, quiz result) for one
calendar day. Everything else here is a projection recomputed from those
records on every read.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional


BADGE_DEFINITIONS = {
    "streak-7": {"name": "7-Day Streak", "description": "Maintained a consistent streak for 7 days in a row!", "icon": "fire"},
    "consistency-90": {"name": "High Achiever", "description": "Achieved a consistency score of 90% or higher.", "icon": "trophy"},
    "deep-thinker": {"name": "Deep Thinker", "description": "Consistently provided deep, thoughtful reflections (average depth of 4+).", "icon": "brain"},
    "quiz-whiz": {"name": "Quiz Whiz", "description": "Mastered the daily quizzes with an average score of 90% or higher.", "icon": "target"},
    "perfect-week": {"name": "Perfect Week", "description": "Completed every goal for a full 7 days.", "icon": "star"},
}

# At-risk reasons, in reporting precedence order
REASON_MISSED_GOALS = "missed-goals"
REASON_LOW_REFLECTION = "low-reflection-depth"
REASON_LOW_CONSISTENCY = "low-consistency"
REASON_MULTIPLE = "multiple-issues"

MIN_REFLECTION_DEPTH = 1
MAX_REFLECTION_DEPTH = 5


def normalize_date(value: Any) -> date:
    """Reduce a date, datetime or ISO string to its calendar day.

    Time-of-day and timezone suffixes are discarded so that two timestamps on
    the same day always compare equal.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("date is required")
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise ValueError(f"invalid date: {value!r}") from None
    raise ValueError(f"invalid date: {value!r}")


def _part(data: dict, key: str) -> Optional[dict]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be an object")
    return value


def _finite_number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{what} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{what} must be a number") from None
    if not math.isfinite(number):
        raise ValueError(f"{what} must be a finite number")
    return number


def _whole_number(value: Any, what: str) -> int:
    """Accept 4, 4.0 or "4"; reject 4.7, "4.7" and non-numbers."""
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise ValueError(f"{what} must be a whole number") from None
    number = _finite_number(value, what)
    if not number.is_integer():
        raise ValueError(f"{what} must be a whole number")
    return int(number)


@dataclass(frozen=True)
class Goal:
    text: str = ""
    completed: bool = False


@dataclass(frozen=True)
class Reflection:
    text: str = ""
    depth: int = 1  # 1-5
    confidence_level: str = ""


@dataclass(frozen=True)
class QuizResult:
    score: float = 0
    total: float = 0

    @property
    def ratio(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.score / self.total


@dataclass(frozen=True)
class DailyRecord:
    date: date
    goal: Optional[Goal] = None
    reflection: Optional[Reflection] = None
    quiz_result: Optional[QuizResult] = None

    @property
    def is_active(self) -> bool:
        return bool(self.goal or self.reflection or self.quiz_result)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"date": self.date.isoformat()}
        if self.goal:
            data["goal"] = {"text": self.goal.text, "completed": self.goal.completed}
        if self.reflection:
            data["reflection"] = {
                "text": self.reflection.text,
                "depth": self.reflection.depth,
            }
            if self.reflection.confidence_level:
                data["reflection"]["confidenceLevel"] = self.reflection.confidence_level
        if self.quiz_result:
            data["quizResult"] = {"score": self.quiz_result.score, "total": self.quiz_result.total}
        return data

    @staticmethod
    def from_dict(data: dict) -> DailyRecord:
        """Build a record from request JSON, validating the optional parts.

        Accepts ``quizEvaluation`` as an alias of ``quizResult``.
        """
        if not isinstance(data, dict):
            raise ValueError("entry must be an object")
        day = normalize_date(data.get("date"))

        goal = None
        raw_goal = _part(data, "goal")
        if raw_goal:
            goal = Goal(
                text=str(raw_goal.get("text", "")),
                completed=bool(raw_goal.get("completed", False)),
            )

        reflection = None
        raw_reflection = _part(data, "reflection")
        if raw_reflection:
            depth = _whole_number(raw_reflection.get("depth"), "reflection depth")
            if not MIN_REFLECTION_DEPTH <= depth <= MAX_REFLECTION_DEPTH:
                raise ValueError("reflection depth must be between 1 and 5")
            reflection = Reflection(
                text=str(raw_reflection.get("text", "")),
                depth=depth,
                confidence_level=str(raw_reflection.get("confidenceLevel", "") or ""),
            )

        quiz = None
        raw_quiz = _part(data, "quizResult") or _part(data, "quizEvaluation")
        if raw_quiz:
            score = _finite_number(raw_quiz.get("score"), "quiz score")
            total = _finite_number(raw_quiz.get("total"), "quiz total")
            if total <= 0:
                raise ValueError("quiz total must be positive")
            if score < 0:
                raise ValueError("quiz score cannot be negative")
            quiz = QuizResult(score=score, total=total)

        return DailyRecord(date=day, goal=goal, reflection=reflection, quiz_result=quiz)


@dataclass
class DailyEngagement:
    date: date
    score: int = 0
    activity_count: int = 0
    has_goal: bool = False
    has_reflection: bool = False
    has_quiz: bool = False

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "score": self.score,
            "activityCount": self.activity_count,
            "hasGoal": self.has_goal,
            "hasReflection": self.has_reflection,
            "hasQuiz": self.has_quiz,
        }


@dataclass
class EngagementMetrics:
    per_day: list[DailyEngagement] = field(default_factory=list)
    average_daily: float = 0.0
    active_day_count: int = 0
    streak_days: int = 0
    weekly_trend_pct: float = 0.0
    monthly_trend_pct: float = 0.0

    def to_dict(self) -> dict:
        return {
            "perDay": [d.to_dict() for d in self.per_day],
            "averageDaily": self.average_daily,
            "activeDayCount": self.active_day_count,
            "streakDays": self.streak_days,
            "weeklyTrendPct": self.weekly_trend_pct,
            "monthlyTrendPct": self.monthly_trend_pct,
        }

    @staticmethod
    def from_dict(data: dict) -> EngagementMetrics:
        return EngagementMetrics(
            per_day=[
                DailyEngagement(
                    date=normalize_date(d["date"]),
                    score=d.get("score", 0),
                    activity_count=d.get("activityCount", 0),
                    has_goal=d.get("hasGoal", False),
                    has_reflection=d.get("hasReflection", False),
                    has_quiz=d.get("hasQuiz", False),
                )
                for d in data.get("perDay", [])
            ],
            average_daily=data.get("averageDaily", 0.0),
            active_day_count=data.get("activeDayCount", 0),
            streak_days=data.get("streakDays", 0),
            weekly_trend_pct=data.get("weeklyTrendPct", 0.0),
            monthly_trend_pct=data.get("monthlyTrendPct", 0.0),
        )


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    icon: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description, "icon": self.icon}


def badge_catalog() -> list[Badge]:
    return [Badge(id=bid, **meta) for bid, meta in BADGE_DEFINITIONS.items()]


def sorted_badge_ids(badge_ids) -> list[str]:
    """Order badge ids by catalog position; unknown ids go last, alphabetically."""
    order = {bid: i for i, bid in enumerate(BADGE_DEFINITIONS)}
    return sorted(badge_ids, key=lambda b: (order.get(b, len(order)), b))


@dataclass
class StudentAggregate:
    student_id: int
    name: str
    consistency_score: int = 0
    streak: int = 0
    badges: set[str] = field(default_factory=set)
    entries: list[DailyRecord] = field(default_factory=list)
    daily_engagement: Optional[EngagementMetrics] = None

    def to_dict(self) -> dict:
        data = {
            "studentId": self.student_id,
            "name": self.name,
            "consistencyScore": self.consistency_score,
            "streak": self.streak,
            "badges": [
                {"id": b, **BADGE_DEFINITIONS.get(b, {"name": b})}
                for b in sorted_badge_ids(self.badges)
            ],
            "entries": [e.to_dict() for e in self.entries],
        }
        if self.daily_engagement is not None:
            data["dailyEngagement"] = self.daily_engagement.to_dict()
        return data


@dataclass
class AtRiskEntry:
    student_id: int
    name: str
    reason: str
    missed_goal_count: int = 0
    avg_reflection_depth: float = 0.0
    avg_quiz_score_pct: int = 0

    @property
    def reason_label(self) -> str:
        if self.reason == REASON_MISSED_GOALS:
            return f"Missed {self.missed_goal_count} goals"
        if self.reason == REASON_LOW_REFLECTION:
            return "Low reflection depth"
        if self.reason == REASON_LOW_CONSISTENCY:
            return "Low consistency score"
        return "Multiple issues"

    def to_dict(self) -> dict:
        return {
            "studentId": self.student_id,
            "name": self.name,
            "reason": self.reason,
            "reasonLabel": self.reason_label,
            "missedGoalCount": self.missed_goal_count,
            "avgReflectionDepth": self.avg_reflection_depth,
            "avgQuizScorePct": self.avg_quiz_score_pct,
        }
