"""Points, levels and streaks.

Levels follow a geometric curve with base 100 and ratio 2: level 1 covers
``[0, 100)``, level 2 ``[100, 200)``, level 3 ``[200, 400)`` and so on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Optional

from ledger import finite_or_zero

LEVEL_BASE_POINTS = 100

POINT_REWARDS = MappingProxyType(
    {
        "transaction_logged": 10,
        "daily_streak_bonus": 5,
        "budget_day_success": 25,
        "weekly_budget_complete": 100,
        "monthly_budget_complete": 250,
        "savings_target_hit": 50,
        "first_transaction": 50,
    }
)


@dataclass(frozen=True)
class LevelProgress:
    level: int
    fraction: float
    points_in_level: float
    points_needed: float


@dataclass(frozen=True)
class StreakUpdate:
    streak_days: int
    points_awarded: int
    changed: bool


@dataclass(frozen=True)
class PointsAward:
    points: int
    total_points: int
    level: int
    leveled_up: bool


def level_floor(level: int) -> int:
    if level <= 1:
        return 0
    return LEVEL_BASE_POINTS * 2 ** (level - 2)


def calculate_level(total_points: float) -> int:
    points = max(0.0, finite_or_zero(total_points))
    level = 1
    while points >= level_floor(level + 1):
        level += 1
    return level


def points_for_next_level(level: int) -> int:
    return LEVEL_BASE_POINTS * 2 ** max(0, level)


def level_progress(total_points: float) -> LevelProgress:
    points = max(0.0, finite_or_zero(total_points))
    level = calculate_level(points)
    floor = level_floor(level)
    ceiling = level_floor(level + 1)
    span = ceiling - floor
    fraction = (points - floor) / span if span > 0 else 0.0
    return LevelProgress(
        level=level,
        fraction=min(1.0, max(0.0, fraction)),
        points_in_level=points - floor,
        points_needed=span,
    )


def update_streak(
    streak_days: int,
    last_updated: Optional[datetime],
    now: datetime,
    *,
    bonus_per_day: int = POINT_REWARDS["daily_streak_bonus"],
) -> StreakUpdate:
    current = max(0, int(streak_days or 0))
    if last_updated is None:
        return StreakUpdate(streak_days=1, points_awarded=0, changed=True)

    elapsed = (now.date() - last_updated.date()).days
    if elapsed <= 0:
        return StreakUpdate(streak_days=current, points_awarded=0, changed=False)
    if elapsed == 1:
        new_streak = current + 1
        return StreakUpdate(
            streak_days=new_streak,
            points_awarded=bonus_per_day * new_streak,
            changed=True,
        )
    return StreakUpdate(streak_days=1, points_awarded=0, changed=True)


def transaction_points(is_first: bool) -> int:
    points = POINT_REWARDS["transaction_logged"]
    if is_first:
        points += POINT_REWARDS["first_transaction"]
    return points


def budget_completion_points(period: str) -> int:
    if period == "day":
        return POINT_REWARDS["budget_day_success"]
    if period == "week":
        return POINT_REWARDS["weekly_budget_complete"]
    if period == "month":
        return POINT_REWARDS["monthly_budget_complete"]
    raise ValueError(f"Unsupported budget period: {period}")


def apply_points(total_points: int, points: int) -> PointsAward:
    old_level = calculate_level(total_points)
    new_total = max(0, int(total_points) + int(points))
    new_level = calculate_level(new_total)
    return PointsAward(
        points=int(points),
        total_points=new_total,
        level=new_level,
        leveled_up=new_level > old_level,
    )


def savings_rate(income: float, expense: float) -> Optional[float]:
    income = finite_or_zero(income)
    if income <= 0:
        return None
    return round((income - finite_or_zero(expense)) / income * 100, 1)


def leaderboard_snapshot(
    *,
    total_points: int,
    streak_days: int,
    transactions_logged: int,
    savings_percentage: Optional[float] = None,
    budget_adherence_score: Optional[float] = None,
) -> dict[str, object]:
    # Aggregates only; no transaction-level data leaves the device.
    return {
        "total_points": int(total_points),
        "level": calculate_level(total_points),
        "streak_days": int(streak_days),
        "transactions_logged": int(transactions_logged),
        "savings_percentage": savings_percentage,
        "budget_adherence_score": budget_adherence_score,
    }
