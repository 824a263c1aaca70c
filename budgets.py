from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Sequence

from gamification import POINT_REWARDS, budget_completion_points
from ledger import (
    CategoryView,
    Entry,
    Expense,
    GoalView,
    delta,
    filter_by_account,
    finite_or_zero,
    safe_amount,
)
from models import GoalPeriod
from periods import Period, goal_period, local_now

CategoryMatchFn = Callable[[str, str], bool]


@dataclass(frozen=True)
class GoalProgress:
    goal_id: str
    period: Period
    current: float
    target: float
    ratio: float
    percentage: int
    remaining: float

    @property
    def is_savings(self) -> bool:
        return self.period.slug == "savings"


def exact_category_match(transaction_category: str, goal_category: str) -> bool:
    return transaction_category == goal_category


def category_group_matcher(categories: Sequence[CategoryView]) -> CategoryMatchFn:
    if not categories:
        return exact_category_match

    by_name: dict[str, CategoryView] = {}
    by_id: dict[str, CategoryView] = {}
    for category in categories:
        by_name.setdefault(category.name, category)
        by_id.setdefault(category.id, category)

    # Entries and goals carry category names; ids are only a fallback.
    def resolve(key: str) -> Optional[CategoryView]:
        return by_name.get(key) or by_id.get(key)

    def matches(transaction_category: str, goal_category: str) -> bool:
        txn_cat = resolve(transaction_category)
        goal_cat = resolve(goal_category)
        if txn_cat is None or goal_cat is None:
            return transaction_category == goal_category
        if txn_cat.id == goal_cat.id or txn_cat.name == goal_cat.name:
            return True
        return txn_cat.parent_id is not None and txn_cat.parent_id == goal_cat.id

    return matches


def _progress_ratio(current: float, target: float) -> float:
    if target <= 0:
        return 0.0
    return min(1.0, max(0.0, current) / target)


def goal_progress(
    goal: GoalView,
    entries: Sequence[Entry],
    *,
    now: Optional[datetime] = None,
    category_matches: Optional[CategoryMatchFn] = None,
    viewpoint_account_id: Optional[str] = None,
) -> GoalProgress:
    now = now or local_now()
    window = goal_period(goal.period, now.date())
    target = safe_amount(goal.target)
    in_window = [
        e
        for e in filter_by_account(entries, viewpoint_account_id)
        if not e.exclude_from_reports and e.day is not None and window.contains(e.day)
    ]
    if goal.created_at is not None and goal.created_at.date() > window.end:
        in_window = []

    if goal.category:
        matcher = category_matches or exact_category_match
        current = sum(
            safe_amount(e.amount)
            for e in in_window
            if isinstance(e, Expense) and matcher(e.category, goal.category)
        )
        period = Period("spending", window.start, window.end)
    else:
        net = sum(delta(e, viewpoint_account_id) for e in in_window)
        current = max(0.0, finite_or_zero(net))
        period = Period("savings", window.start, window.end)

    ratio = _progress_ratio(current, target)
    percentage = int(
        Decimal(str(ratio * 100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    return GoalProgress(
        goal_id=goal.id,
        period=period,
        current=current,
        target=target,
        ratio=ratio,
        percentage=percentage,
        remaining=target - current,
    )


def completion_points(goal: GoalView, progress: GoalProgress, today: date) -> int:
    if today != progress.period.end:
        return 0
    if progress.is_savings:
        if progress.target > 0 and progress.current >= progress.target:
            return POINT_REWARDS["savings_target_hit"]
        return 0
    if progress.current > progress.target:
        return 0
    return budget_completion_points(goal.period.value)


def daily_target(goal: GoalView) -> float:
    days = 7 if goal.period == GoalPeriod.week else 30
    return safe_amount(goal.target) / days


def daily_budget_success(
    goals: Sequence[GoalView],
    entries: Sequence[Entry],
    *,
    today: date,
    category_matches: Optional[CategoryMatchFn] = None,
    viewpoint_account_id: Optional[str] = None,
) -> bool:
    """True when something was logged today and every spending goal's
    period-to-date spending is within its daily share of the target.

    Savings goals are ignored; with no spending goals there is nothing to
    stay under, so the day does not count.
    """
    scoped = filter_by_account(entries, viewpoint_account_id)
    if not any(e.day == today for e in scoped):
        return False
    spending_goals = [g for g in goals if g.category]
    if not spending_goals:
        return False

    now = datetime.combine(today, time(12, 0))
    for goal in spending_goals:
        progress = goal_progress(
            goal,
            entries,
            now=now,
            category_matches=category_matches,
            viewpoint_account_id=viewpoint_account_id,
        )
        if progress.current > daily_target(goal):
            return False
    return True
