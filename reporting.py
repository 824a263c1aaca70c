from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from config import get_settings
from ledger import (
    AccountView,
    Entry,
    Expense,
    Income,
    delta,
    filter_by_account,
    finite_or_zero,
    safe_amount,
    scope_entries,
    visible_account_ids,
)
from models import GoalPeriod, TransactionType
from periods import Period, add_months, month_end, month_start, previous_period

NO_CHANGE = "—"


@dataclass(frozen=True)
class PeriodSummary:
    income: float
    expense: float
    net_change: float
    opening_balance: float
    closing_balance: float
    percentage_change: str


@dataclass(frozen=True)
class Bucket:
    start: date
    end: date
    income: float
    expense: float
    net: float


@dataclass(frozen=True)
class Trend:
    current: Period
    previous: Period
    current_expense: float
    previous_expense: float
    change: str


@dataclass(frozen=True)
class MonthlySummary:
    income: float
    expense: float
    opening_balance: float
    month_net: float
    post_month_net: float
    ending_balance: float


@dataclass(frozen=True)
class BalanceCheck:
    account_id: str
    expected: float
    recorded: float
    difference: float

    @property
    def matches(self) -> bool:
        return abs(self.difference) < 0.005


def share_percentage(part: float, total: float) -> int:
    if not total or not math.isfinite(total) or not math.isfinite(part):
        return 0
    value = Decimal(str(part / total * 100))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_percentage_change(current: float, previous: float) -> str:
    if not previous or not math.isfinite(previous) or not math.isfinite(current):
        return NO_CHANGE
    change = (current - previous) / abs(previous) * 100
    return f"{'+' if change >= 0 else ''}{change:.1f}%"


def _matches_search(entry: Entry, query: str) -> bool:
    fields = (entry.note, getattr(entry, "category", ""), entry.location)
    return any(query in (value or "").lower() for value in fields)


def filter_entries(
    entries: Iterable[Entry],
    *,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    categories: Iterable[str] = (),
    search: str = "",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[Entry]:
    """Narrow entries by amount bounds, category names, free text and a date sub-range.

    Unset criteria match everything. Amount bounds are inclusive, and so are
    ``start`` and ``end``. Entries without a date fail any date bound.
    """
    wanted = frozenset(categories)
    query = (search or "").strip().lower()
    out: list[Entry] = []
    for entry in entries:
        day = entry.day
        if start is not None and (day is None or day < start):
            continue
        if end is not None and (day is None or day > end):
            continue
        amount = safe_amount(entry.amount)
        if min_amount is not None and amount < min_amount:
            continue
        if max_amount is not None and amount > max_amount:
            continue
        if wanted and getattr(entry, "category", None) not in wanted:
            continue
        if query and not _matches_search(entry, query):
            continue
        out.append(entry)
    return out


def _is_reportable(entry: Entry) -> bool:
    return not entry.exclude_from_reports and entry.day is not None


def _scoped(
    entries: Sequence[Entry],
    viewpoint_account_id: Optional[str],
    accounts: Iterable[AccountView],
    base_currency: Optional[str],
) -> Sequence[Entry]:
    accounts = list(accounts)
    visible: frozenset[str] = frozenset()
    if accounts and not viewpoint_account_id:
        visible = visible_account_ids(
            accounts, base_currency or get_settings().base_currency
        )
    return scope_entries(entries, viewpoint_account_id, visible)


def _totals(
    entries: Iterable[Entry], viewpoint_account_id: Optional[str]
) -> tuple[float, float, float]:
    income = 0.0
    expense = 0.0
    net = 0.0
    for entry in entries:
        if isinstance(entry, Income):
            income += safe_amount(entry.amount)
        elif isinstance(entry, Expense):
            expense += safe_amount(entry.amount)
        net += delta(entry, viewpoint_account_id)
    return income, expense, net


def summarize_period(
    entries: Sequence[Entry],
    period: Period,
    *,
    viewpoint_account_id: Optional[str] = None,
    accounts: Iterable[AccountView] = (),
    base_currency: Optional[str] = None,
) -> PeriodSummary:
    scoped = [
        e
        for e in _scoped(entries, viewpoint_account_id, accounts, base_currency)
        if _is_reportable(e)
    ]
    opening = sum(
        delta(e, viewpoint_account_id) for e in scoped if e.day < period.start
    )
    in_period = [e for e in scoped if period.contains(e.day)]
    income, expense, net = _totals(in_period, viewpoint_account_id)
    closing = opening + net
    return PeriodSummary(
        income=income,
        expense=expense,
        net_change=net,
        opening_balance=opening,
        closing_balance=closing,
        percentage_change=format_percentage_change(closing, opening),
    )


def _by_day(
    entries: Sequence[Entry], period: Period
) -> dict[date, list[Entry]]:
    grouped: dict[date, list[Entry]] = {}
    for entry in entries:
        if _is_reportable(entry) and period.contains(entry.day):
            grouped.setdefault(entry.day, []).append(entry)
    return grouped


def daily_series(
    entries: Sequence[Entry],
    period: Period,
    *,
    viewpoint_account_id: Optional[str] = None,
    accounts: Iterable[AccountView] = (),
    base_currency: Optional[str] = None,
) -> list[Bucket]:
    scoped = _scoped(entries, viewpoint_account_id, accounts, base_currency)
    grouped = _by_day(scoped, period)
    out: list[Bucket] = []
    for offset in range(period.days):
        day = period.start + timedelta(days=offset)
        income, expense, net = _totals(grouped.get(day, ()), viewpoint_account_id)
        out.append(Bucket(day, day, income, expense, net))
    return out


def weekly_series(
    entries: Sequence[Entry],
    period: Period,
    *,
    viewpoint_account_id: Optional[str] = None,
    accounts: Iterable[AccountView] = (),
    base_currency: Optional[str] = None,
) -> list[Bucket]:
    days = daily_series(
        entries,
        period,
        viewpoint_account_id=viewpoint_account_id,
        accounts=accounts,
        base_currency=base_currency,
    )
    out: list[Bucket] = []
    for index in range(0, len(days), 7):
        window = days[index : index + 7]
        out.append(
            Bucket(
                start=window[0].start,
                end=window[-1].end,
                income=sum(b.income for b in window),
                expense=sum(b.expense for b in window),
                net=sum(b.net for b in window),
            )
        )
    return out


def cumulative(values: Iterable[float]) -> list[float]:
    out: list[float] = []
    running = 0.0
    for value in values:
        running += value
        out.append(running)
    return out


def align_series(values: Sequence[float], length: int) -> list[float]:
    out = list(values)
    if len(out) >= length:
        return out
    filler = out[-1] if out else 0.0
    return out + [filler] * (length - len(out))


def align_pair(
    current: Sequence[float], previous: Sequence[float]
) -> tuple[list[float], list[float]]:
    length = max(len(current), len(previous))
    return align_series(current, length), align_series(previous, length)


def trend_comparison(
    entries: Sequence[Entry],
    period: Period,
    unit: GoalPeriod,
    *,
    viewpoint_account_id: Optional[str] = None,
    accounts: Iterable[AccountView] = (),
    base_currency: Optional[str] = None,
) -> Trend:
    accounts = list(accounts)
    previous = previous_period(period, unit)
    current_summary = summarize_period(
        entries,
        period,
        viewpoint_account_id=viewpoint_account_id,
        accounts=accounts,
        base_currency=base_currency,
    )
    previous_summary = summarize_period(
        entries,
        previous,
        viewpoint_account_id=viewpoint_account_id,
        accounts=accounts,
        base_currency=base_currency,
    )
    return Trend(
        current=period,
        previous=previous,
        current_expense=current_summary.expense,
        previous_expense=previous_summary.expense,
        change=format_percentage_change(
            current_summary.expense, previous_summary.expense
        ),
    )


def monthly_series(
    entries: Sequence[Entry],
    period: Period,
    *,
    months_back: int = 12,
    viewpoint_account_id: Optional[str] = None,
    accounts: Iterable[AccountView] = (),
    base_currency: Optional[str] = None,
) -> list[dict[str, object]]:
    months: list[date] = []
    current = month_start(period.start)
    while current <= month_start(period.end):
        months.append(current)
        current = add_months(current, 1)
    if len(months) > months_back:
        months = months[-months_back:]

    scoped = _scoped(entries, viewpoint_account_id, accounts, base_currency)
    totals: dict[tuple[int, int], list[Entry]] = {}
    for entry in scoped:
        if _is_reportable(entry):
            totals.setdefault((entry.day.year, entry.day.month), []).append(entry)

    out: list[dict[str, object]] = []
    for month in months:
        income, expense, net = _totals(
            totals.get((month.year, month.month), ()), viewpoint_account_id
        )
        out.append(
            {
                "year": month.year,
                "month": month.month,
                "label": f"{month.year:04d}-{month.month:02d}",
                "income": income,
                "expense": expense,
                "net": net,
            }
        )
    return out


def rolling_monthly_average(
    entries: Sequence[Entry],
    reference: date,
    *,
    months: int = 3,
    transaction_type: TransactionType = TransactionType.expense,
    viewpoint_account_id: Optional[str] = None,
    accounts: Iterable[AccountView] = (),
    base_currency: Optional[str] = None,
) -> float:
    if months <= 0:
        return 0.0
    scoped = _scoped(entries, viewpoint_account_id, accounts, base_currency)
    wanted = Income if transaction_type == TransactionType.income else Expense
    reference_month = month_start(reference)
    total = 0.0
    for back in range(1, months + 1):
        first = add_months(reference_month, -back)
        window = Period("trailing", first, month_end(first))
        total += sum(
            safe_amount(e.amount)
            for e in scoped
            if isinstance(e, wanted) and _is_reportable(e) and window.contains(e.day)
        )
    return total / months


def month_balance_summary(
    entries: Sequence[Entry],
    month: Period,
    *,
    accounts: Iterable[AccountView] = (),
    viewpoint_account_id: Optional[str] = None,
    base_currency: Optional[str] = None,
) -> MonthlySummary:
    accounts = list(accounts)
    base = base_currency or get_settings().base_currency
    if viewpoint_account_id:
        seed = sum(
            finite_or_zero(a.initial_balance)
            for a in accounts
            if a.id == viewpoint_account_id
        )
    else:
        visible = visible_account_ids(accounts, base)
        seed = sum(finite_or_zero(a.initial_balance) for a in accounts if a.id in visible)

    opening = seed
    income = 0.0
    expense = 0.0
    month_net = 0.0
    post_month_net = 0.0
    for entry in _scoped(entries, viewpoint_account_id, accounts, base):
        day = entry.day
        if day is None:
            continue
        value = delta(entry, viewpoint_account_id)
        if day < month.start:
            opening += value
        elif day <= month.end:
            month_net += value
            if entry.exclude_from_reports:
                continue
            if isinstance(entry, Income):
                income += safe_amount(entry.amount)
            elif isinstance(entry, Expense):
                expense += safe_amount(entry.amount)
        else:
            post_month_net += value

    return MonthlySummary(
        income=income,
        expense=expense,
        opening_balance=opening,
        month_net=month_net,
        post_month_net=post_month_net,
        ending_balance=opening + month_net + post_month_net,
    )


def verify_account_balance(
    account: AccountView, entries: Sequence[Entry]
) -> BalanceCheck:
    expected = finite_or_zero(account.initial_balance) + sum(
        delta(entry, account.id) for entry in filter_by_account(entries, account.id)
    )
    recorded = finite_or_zero(account.balance)
    return BalanceCheck(
        account_id=account.id,
        expected=expected,
        recorded=recorded,
        difference=recorded - expected,
    )
