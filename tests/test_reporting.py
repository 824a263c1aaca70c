import math
from datetime import date, datetime

from ledger import AccountView, Expense, Income, Transfer, delta, filter_by_account
from models import AccountType, GoalPeriod, TransactionType
from periods import Period, month_period
from reporting import (
    NO_CHANGE,
    align_pair,
    align_series,
    cumulative,
    daily_series,
    filter_entries,
    format_percentage_change,
    month_balance_summary,
    monthly_series,
    rolling_monthly_average,
    share_percentage,
    summarize_period,
    trend_comparison,
    verify_account_balance,
    weekly_series,
)
from schemas import parse_amount_filter

MARCH = month_period(date(2025, 3, 15))


def _entries():
    return [
        Income(id="1", date=datetime(2025, 2, 20), amount=500, account_id="a"),
        Expense(id="2", date=datetime(2025, 2, 25), amount=100, account_id="a"),
        Income(id="3", date=datetime(2025, 3, 1), amount=1000, account_id="a"),
        Expense(
            id="4",
            date=datetime(2025, 3, 3),
            amount=200,
            account_id="a",
            category="Dining",
        ),
        Transfer(
            id="5",
            date=datetime(2025, 3, 5),
            amount=300,
            account_id="a",
            to_account_id="b",
        ),
        Expense(
            id="6",
            date=datetime(2025, 3, 10),
            amount=999,
            account_id="a",
            exclude_from_reports=True,
        ),
        Expense(id="7", date=datetime(2025, 4, 2), amount=50, account_id="b"),
    ]


def test_summarize_period_opening_and_closing() -> None:
    summary = summarize_period(_entries(), MARCH)
    assert summary.opening_balance == 400
    assert summary.income == 1000
    assert summary.expense == 200
    assert summary.net_change == 800
    assert summary.closing_balance == 1200
    assert summary.percentage_change == "+200.0%"


def test_closing_minus_opening_equals_sum_of_deltas() -> None:
    entries = _entries()
    for viewpoint in (None, "a", "b"):
        summary = summarize_period(entries, MARCH, viewpoint_account_id=viewpoint)
        in_period = sum(
            delta(e, viewpoint)
            for e in filter_by_account(entries, viewpoint)
            if not e.exclude_from_reports and MARCH.contains(e.day)
        )
        assert summary.closing_balance - summary.opening_balance == in_period


def test_viewpoint_sees_transfer_as_movement() -> None:
    summary = summarize_period(_entries(), MARCH, viewpoint_account_id="b")
    assert summary.net_change == 300
    assert summary.income == 0
    assert summary.opening_balance == 0
    assert summary.percentage_change == NO_CHANGE


def test_empty_input_yields_zero_totals() -> None:
    summary = summarize_period([], MARCH)
    assert summary.income == 0
    assert summary.expense == 0
    assert summary.closing_balance == 0
    assert summary.percentage_change == NO_CHANGE
    assert all(b.net == 0 for b in daily_series([], MARCH))


def test_foreign_currency_accounts_are_left_out_of_totals() -> None:
    accounts = [
        AccountView(id="a", name="Checking", type=AccountType.bank, currency="USD"),
        AccountView(id="b", name="Euro", type=AccountType.bank, currency="EUR"),
    ]
    entries = [
        Expense(id="1", date=datetime(2025, 3, 2), amount=10, account_id="a"),
        Expense(id="2", date=datetime(2025, 3, 2), amount=70, account_id="b"),
    ]
    summary = summarize_period(entries, MARCH, accounts=accounts, base_currency="USD")
    assert summary.expense == 10


def test_share_percentage_rounds_half_up() -> None:
    assert share_percentage(1, 8) == 13
    assert share_percentage(1, 3) == 33
    assert share_percentage(5, 0) == 0


def test_format_percentage_change() -> None:
    assert format_percentage_change(110, 100) == "+10.0%"
    assert format_percentage_change(90, 100) == "-10.0%"
    assert format_percentage_change(50, -100) == "+150.0%"
    assert format_percentage_change(10, 0) == NO_CHANGE


def test_daily_series_covers_every_day() -> None:
    days = daily_series(_entries(), MARCH)
    assert len(days) == 31
    assert days[0].income == 1000
    assert days[2].expense == 200
    assert days[9].expense == 0


def test_weekly_series_clips_last_window() -> None:
    weeks = weekly_series(_entries(), MARCH)
    assert len(weeks) == 5
    assert weeks[0].start == date(2025, 3, 1)
    assert weeks[0].end == date(2025, 3, 7)
    assert weeks[0].net == 800
    assert weeks[-1].start == date(2025, 3, 29)
    assert weeks[-1].end == date(2025, 3, 31)


def test_align_series_repeats_last_value() -> None:
    assert align_series([1, 2], 4) == [1, 2, 2, 2]
    assert align_series([], 3) == [0, 0, 0]
    current, previous = align_pair(cumulative([1, 1, 1]), [5])
    assert current == [1, 2, 3]
    assert previous == [5, 5, 5]


def test_trend_comparison_against_previous_month() -> None:
    trend = trend_comparison(_entries(), MARCH, GoalPeriod.month)
    assert trend.previous == Period("previous_month", date(2025, 2, 1), date(2025, 2, 28))
    assert trend.current_expense == 200
    assert trend.previous_expense == 100
    assert trend.change == "+100.0%"


def test_monthly_series_labels() -> None:
    quarter = Period("custom", date(2025, 2, 1), date(2025, 4, 30))
    rows = monthly_series(_entries(), quarter)
    assert [r["label"] for r in rows] == ["2025-02", "2025-03", "2025-04"]
    assert rows[0]["net"] == 400
    assert rows[2]["expense"] == 50


def test_rolling_average_uses_complete_trailing_months() -> None:
    entries = [
        Expense(id="1", date=datetime(2025, 1, 5), amount=90, account_id="a"),
        Expense(id="2", date=datetime(2025, 2, 5), amount=60, account_id="a"),
        Expense(id="3", date=datetime(2025, 3, 5), amount=1000, account_id="a"),
    ]
    assert rolling_monthly_average(entries, date(2025, 3, 20)) == 50
    assert (
        rolling_monthly_average(
            entries, date(2025, 3, 20), transaction_type=TransactionType.income
        )
        == 0
    )


def test_month_balance_summary_seeds_initial_balances() -> None:
    accounts = [
        AccountView(
            id="a",
            name="Checking",
            type=AccountType.bank,
            currency="USD",
            initial_balance=250,
        ),
        AccountView(id="b", name="Savings", type=AccountType.bank, currency="USD"),
    ]
    summary = month_balance_summary(
        _entries(), MARCH, accounts=accounts, base_currency="USD"
    )
    assert summary.opening_balance == 650
    assert summary.income == 1000
    assert summary.expense == 200
    # excluded expense still moves the balance
    assert summary.month_net == -199
    assert summary.post_month_net == -50
    assert summary.ending_balance == 401


def test_verify_account_balance_reports_drift() -> None:
    account = AccountView(
        id="b",
        name="Savings",
        type=AccountType.bank,
        currency="USD",
        balance=260,
        initial_balance=10,
    )
    check = verify_account_balance(account, _entries())
    assert check.expected == 260
    assert check.matches

    drifted = verify_account_balance(
        AccountView(
            id="b",
            name="Savings",
            type=AccountType.bank,
            currency="USD",
            balance=300,
            initial_balance=10,
        ),
        _entries(),
    )
    assert not drifted.matches
    assert drifted.difference == 40


def test_non_finite_amounts_keep_summary_finite() -> None:
    entries = [
        Income(id="1", date=datetime(2025, 3, 2), amount=float("nan"), account_id="a"),
        Expense(id="2", date=datetime(2025, 3, 3), amount=10, account_id="a"),
        Expense(id="3", date=datetime(2025, 3, 4), amount=float("inf"), account_id="a"),
        Income(id="4", date=datetime(2025, 2, 4), amount=float("-inf"), account_id="a"),
    ]
    summary = summarize_period(entries, MARCH)
    assert summary.income == 0
    assert summary.expense == 10
    assert summary.net_change == -10
    assert summary.opening_balance == 0
    assert summary.closing_balance == -10
    assert summary.percentage_change == NO_CHANGE
    for value in (
        summary.income,
        summary.expense,
        summary.net_change,
        summary.opening_balance,
        summary.closing_balance,
    ):
        assert math.isfinite(value)


def test_non_finite_amounts_do_not_poison_rolling_average() -> None:
    entries = [
        Expense(id=str(month), date=datetime(2025, month, 10), amount=amount, account_id="a")
        for month, amount in ((1, float("inf")), (2, 30), (3, float("nan")))
    ]
    assert rolling_monthly_average(entries, date(2025, 4, 10)) == 10


def _filterable():
    return [
        Expense(
            id="1",
            date=datetime(2025, 3, 2),
            amount=4.5,
            account_id="a",
            category="Dining",
            note="Flat white",
            location="Blue Bottle",
        ),
        Expense(
            id="2",
            date=datetime(2025, 3, 9),
            amount=82,
            account_id="a",
            category="Groceries",
            note="Weekly shop",
        ),
        Income(
            id="3",
            date=datetime(2025, 3, 15),
            amount=1200,
            account_id="a",
            category="Salary",
        ),
        Transfer(
            id="4",
            date=datetime(2025, 3, 20),
            amount=300,
            account_id="a",
            to_account_id="b",
            note="To savings",
        ),
    ]


def _ids(entries):
    return [e.id for e in entries]


def test_filter_entries_without_criteria_keeps_everything() -> None:
    assert _ids(filter_entries(_filterable())) == ["1", "2", "3", "4"]


def test_filter_entries_by_amount_and_date_range() -> None:
    entries = _filterable()
    assert _ids(filter_entries(entries, min_amount=82, max_amount=300)) == ["2", "4"]
    assert _ids(
        filter_entries(entries, start=date(2025, 3, 9), end=date(2025, 3, 15))
    ) == ["2", "3"]


def test_filter_entries_by_category_and_search() -> None:
    entries = _filterable()
    assert _ids(filter_entries(entries, categories=["Dining", "Salary"])) == [
        "1",
        "3",
    ]
    assert _ids(filter_entries(entries, search="blue bottle")) == ["1"]
    assert _ids(filter_entries(entries, search="GROC")) == ["2"]
    assert _ids(filter_entries(entries, search=" savings ")) == ["4"]
    assert filter_entries(entries, search="rent") == []


def test_parse_amount_filter_handles_separators() -> None:
    assert parse_amount_filter("") is None
    assert parse_amount_filter("   ") is None
    assert parse_amount_filter("abc") is None
    assert parse_amount_filter("$ 12.50") == 12.5
    assert parse_amount_filter("1.234,56") == 1234.56
    assert parse_amount_filter("1,234.56") == 1234.56
    assert parse_amount_filter("12,5") == 12.5
    assert parse_amount_filter("1'000") == 1000
    assert parse_amount_filter("1.000.000") == 1000000
    assert parse_amount_filter("-20") == -20
