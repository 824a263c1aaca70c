import math
from datetime import date, datetime

from budgets import (
    category_group_matcher,
    completion_points,
    daily_budget_success,
    daily_target,
    goal_progress,
)
from ledger import CategoryView, Expense, GoalView, Income
from models import GoalPeriod, TransactionType

NOW = datetime(2025, 3, 15, 12, 0)


def _spend(id, day, amount, category):
    return Expense(
        id=id,
        date=datetime(2025, 3, day),
        amount=amount,
        account_id="a",
        category=category,
    )


def test_spending_goal_clamps_at_one_hundred_percent() -> None:
    goal = GoalView(
        id="g",
        name="Eating out",
        target=200,
        period=GoalPeriod.month,
        category="Dining",
    )
    entries = [_spend("1", 3, 150, "Dining"), _spend("2", 10, 100, "Dining")]
    progress = goal_progress(goal, entries, now=NOW)
    assert progress.current == 250
    assert progress.ratio == 1
    assert progress.percentage == 100
    assert progress.remaining == -50
    assert not progress.is_savings


def test_spending_goal_only_counts_current_window() -> None:
    goal = GoalView(
        id="g", name="Coffee", target=40, period=GoalPeriod.week, category="Dining"
    )
    entries = [
        _spend("1", 10, 10, "Dining"),
        _spend("2", 14, 10, "Dining"),
        _spend("3", 14, 50, "Groceries"),
        Expense(
            id="4",
            date=datetime(2025, 3, 12),
            amount=99,
            account_id="a",
            category="Dining",
            exclude_from_reports=True,
        ),
    ]
    progress = goal_progress(goal, entries, now=NOW)
    assert progress.period.start == date(2025, 3, 10)
    assert progress.period.end == date(2025, 3, 16)
    assert progress.current == 20
    assert progress.percentage == 50


def test_savings_goal_uses_net_and_never_goes_negative() -> None:
    goal = GoalView(id="s", name="Save", target=500, period=GoalPeriod.month)
    entries = [
        Income(id="1", date=datetime(2025, 3, 1), amount=1000, account_id="a"),
        _spend("2", 2, 400, "Rent"),
    ]
    progress = goal_progress(goal, entries, now=NOW)
    assert progress.is_savings
    assert progress.current == 600
    assert progress.percentage == 100

    overspent = goal_progress(goal, [_spend("3", 2, 400, "Rent")], now=NOW)
    assert overspent.current == 0
    assert overspent.percentage == 0


def test_group_matcher_counts_child_categories() -> None:
    categories = [
        CategoryView(id="1", name="Food", type=TransactionType.expense),
        CategoryView(
            id="2", name="Dining", type=TransactionType.expense, parent_id="1"
        ),
        CategoryView(id="3", name="Rent", type=TransactionType.expense),
    ]
    matches = category_group_matcher(categories)
    assert matches("Dining", "Food")
    assert matches("Food", "Food")
    assert not matches("Rent", "Food")
    assert not matches("Food", "Dining")
    assert matches("Unknown", "Unknown")

    goal = GoalView(
        id="g", name="Food", target=100, period=GoalPeriod.month, category="Food"
    )
    entries = [_spend("1", 3, 30, "Dining"), _spend("2", 4, 20, "Food")]
    progress = goal_progress(goal, entries, now=NOW, category_matches=matches)
    assert progress.current == 50


def test_completion_points_only_on_last_day_within_budget() -> None:
    goal = GoalView(
        id="g", name="Dining", target=200, period=GoalPeriod.month, category="Dining"
    )
    entries = [_spend("1", 3, 150, "Dining")]
    progress = goal_progress(goal, entries, now=NOW)
    assert completion_points(goal, progress, date(2025, 3, 15)) == 0
    assert completion_points(goal, progress, date(2025, 3, 31)) == 250

    over = goal_progress(goal, entries + [_spend("2", 4, 100, "Dining")], now=NOW)
    assert completion_points(goal, over, date(2025, 3, 31)) == 0


def test_zero_target_reports_zero_progress() -> None:
    goal = GoalView(id="g", name="Odd", target=0, period=GoalPeriod.month, category="X")
    progress = goal_progress(goal, [_spend("1", 3, 10, "X")], now=NOW)
    assert progress.ratio == 0
    assert progress.percentage == 0


def test_group_matcher_prefers_names_over_ids() -> None:
    categories = [
        CategoryView(id="1", name="Food", type=TransactionType.expense),
        CategoryView(
            id="3", name="Dining", type=TransactionType.expense, parent_id="1"
        ),
        CategoryView(id="7", name="3", type=TransactionType.expense),
    ]
    matches = category_group_matcher(categories)
    assert not matches("3", "Food")
    assert matches("Dining", "Food")
    assert matches("3", "3")


def test_goal_created_after_window_counts_nothing() -> None:
    entries = [_spend("1", 3, 150, "Dining")]
    late = GoalView(
        id="g",
        name="Dining",
        target=200,
        period=GoalPeriod.month,
        category="Dining",
        created_at=datetime(2025, 4, 1, 9, 0),
    )
    assert goal_progress(late, entries, now=NOW).current == 0

    mid_month = GoalView(
        id="g",
        name="Dining",
        target=200,
        period=GoalPeriod.month,
        category="Dining",
        created_at=datetime(2025, 3, 20, 9, 0),
    )
    assert goal_progress(mid_month, entries, now=NOW).current == 150


def test_non_finite_amounts_never_reach_goal_progress() -> None:
    goal = GoalView(
        id="g", name="Dining", target=100, period=GoalPeriod.month, category="Dining"
    )
    entries = [
        _spend("1", 3, float("nan"), "Dining"),
        _spend("2", 4, float("inf"), "Dining"),
        _spend("3", 5, 20, "Dining"),
    ]
    progress = goal_progress(goal, entries, now=NOW)
    assert progress.current == 20
    assert progress.percentage == 20
    assert math.isfinite(progress.remaining)

    broken_target = GoalView(
        id="g",
        name="Dining",
        target=float("nan"),
        period=GoalPeriod.month,
        category="Dining",
    )
    progress = goal_progress(broken_target, entries, now=NOW)
    assert progress.target == 0
    assert progress.percentage == 0


def _coffee_goal(period=GoalPeriod.week, target=70):
    return GoalView(
        id="g", name="Coffee", target=target, period=period, category="Dining"
    )


def test_daily_success_within_daily_share() -> None:
    today = date(2025, 3, 15)
    assert daily_target(_coffee_goal()) == 10
    assert daily_target(_coffee_goal(GoalPeriod.month, 300)) == 10

    entries = [_spend("1", 15, 8, "Dining"), _spend("2", 15, 40, "Groceries")]
    assert daily_budget_success([_coffee_goal()], entries, today=today)

    over = entries + [_spend("3", 11, 5, "Dining")]
    assert not daily_budget_success([_coffee_goal()], over, today=today)


def test_daily_success_needs_activity_and_spending_goals() -> None:
    today = date(2025, 3, 15)
    yesterday_only = [_spend("1", 14, 1, "Dining")]
    assert not daily_budget_success([_coffee_goal()], yesterday_only, today=today)

    savings = GoalView(id="s", name="Save", target=500, period=GoalPeriod.month)
    logged_today = [_spend("1", 15, 1, "Dining")]
    assert not daily_budget_success([savings], logged_today, today=today)
    assert not daily_budget_success([], logged_today, today=today)
