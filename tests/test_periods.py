from datetime import date

import pytest

from models import GoalPeriod
from periods import (
    Period,
    add_months,
    goal_period,
    monthly_periods,
    previous_period,
    resolve_period,
    week_period,
)


def test_week_period_starts_on_monday() -> None:
    period = week_period(date(2025, 1, 15))
    assert period.start == date(2025, 1, 13)
    assert period.end == date(2025, 1, 19)
    assert period.days == 7


def test_add_months_clamps_day() -> None:
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 3, 31), -1) == date(2025, 2, 28)
    assert add_months(date(2025, 1, 15), -1) == date(2024, 12, 15)


def test_previous_month_preserves_month_end() -> None:
    march = goal_period(GoalPeriod.month, date(2025, 3, 10))
    previous = previous_period(march, GoalPeriod.month)
    assert previous.start == date(2025, 2, 1)
    assert previous.end == date(2025, 2, 28)


def test_previous_week_shifts_seven_days() -> None:
    week = week_period(date(2025, 3, 12))
    previous = previous_period(week, GoalPeriod.week)
    assert previous.start == date(2025, 3, 3)
    assert previous.end == date(2025, 3, 9)


def test_resolve_period_named_ranges() -> None:
    today = date(2025, 3, 10)
    assert resolve_period("last_month", None, None, today=today) == Period(
        "last_month", date(2025, 2, 1), date(2025, 2, 28)
    )
    this_month = resolve_period(None, None, None, today=today)
    assert (this_month.start, this_month.end) == (date(2025, 3, 1), date(2025, 3, 31))


def test_resolve_custom_period_requires_ordered_dates() -> None:
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-03-10", None)
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-03-10", "2025-03-01")
    custom = resolve_period("custom", "2025-03-01", "2025-03-10")
    assert custom.days == 10


def test_monthly_periods_extends_to_oldest_transaction() -> None:
    slugs = [p.slug for p in monthly_periods(3, today=date(2025, 3, 10))]
    assert slugs == ["2025-01", "2025-02", "2025-03"]

    extended = monthly_periods(
        2, today=date(2025, 3, 10), transaction_dates=[date(2024, 12, 24)]
    )
    assert [p.slug for p in extended] == ["2024-12", "2025-01", "2025-02", "2025-03"]
