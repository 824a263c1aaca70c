"""Immutable ledger views and per-transaction primitives.

Every reporting function works on these frozen views rather than on ORM rows,
so they can be recomputed freely whenever the underlying collections change.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, Optional, Sequence, Union

from models import AccountType, GoalPeriod, TransactionType


def finite_or_zero(value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def safe_amount(value: object) -> float:
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


@dataclass(frozen=True, kw_only=True)
class _Entry:
    id: str
    date: datetime
    amount: float
    account_id: str
    note: str = ""
    exclude_from_reports: bool = False
    created_at: Optional[datetime] = None
    location: Optional[str] = None

    @property
    def day(self) -> Optional[date]:
        if self.date is None:
            return None
        if isinstance(self.date, datetime):
            return self.date.date()
        return self.date


@dataclass(frozen=True, kw_only=True)
class Income(_Entry):
    category: str = ""

    @property
    def type(self) -> TransactionType:
        return TransactionType.income


@dataclass(frozen=True, kw_only=True)
class Expense(_Entry):
    category: str = ""

    @property
    def type(self) -> TransactionType:
        return TransactionType.expense


@dataclass(frozen=True, kw_only=True)
class Transfer(_Entry):
    to_account_id: str

    @property
    def type(self) -> TransactionType:
        return TransactionType.transfer


Entry = Union[Income, Expense, Transfer]


@dataclass(frozen=True, kw_only=True)
class AccountView:
    id: str
    name: str
    type: AccountType
    currency: str
    balance: float = 0.0
    initial_balance: float = 0.0
    exclude_from_total: bool = False
    is_archived: bool = False


@dataclass(frozen=True, kw_only=True)
class CategoryView:
    id: str
    name: str
    type: TransactionType
    parent_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class GoalView:
    id: str
    name: str
    target: float
    period: GoalPeriod
    category: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class VisualState:
    prefix: str  # "" | "+" | "−"
    variant: str  # "income" | "expense" | "neutral"


def delta(entry: Entry, viewpoint_account_id: Optional[str]) -> float:
    amount = safe_amount(entry.amount)
    if isinstance(entry, Income):
        return amount
    if isinstance(entry, Expense):
        return -amount
    if isinstance(entry, Transfer):
        if not viewpoint_account_id:
            return 0.0
        if entry.account_id == viewpoint_account_id:
            return -amount
        if entry.to_account_id == viewpoint_account_id:
            return amount
    return 0.0


def visual_state(entry: Entry, viewpoint_account_id: Optional[str]) -> VisualState:
    if isinstance(entry, Income):
        return VisualState("+", "income")
    if isinstance(entry, Expense):
        return VisualState("−", "expense")
    value = delta(entry, viewpoint_account_id)
    if value == 0:
        return VisualState("", "neutral")
    if value > 0:
        return VisualState("+", "income")
    return VisualState("−", "expense")


def touches_account(entry: Entry, account_id: str) -> bool:
    if isinstance(entry, Transfer):
        return entry.account_id == account_id or entry.to_account_id == account_id
    return entry.account_id == account_id


def filter_by_account(
    entries: Sequence[Entry], account_id: Optional[str]
) -> Sequence[Entry]:
    if not account_id:
        return entries
    return [entry for entry in entries if touches_account(entry, account_id)]


def visible_account_ids(
    accounts: Iterable[AccountView], base_currency: str
) -> frozenset[str]:
    base = (base_currency or "").upper()
    return frozenset(
        account.id
        for account in accounts
        if not account.exclude_from_total
        and (account.currency or base).upper() == base
    )


def scope_entries(
    entries: Sequence[Entry],
    viewpoint_account_id: Optional[str],
    visible_ids: Optional[Iterable[str]] = None,
) -> Sequence[Entry]:
    if viewpoint_account_id:
        return filter_by_account(entries, viewpoint_account_id)
    allowed = frozenset(visible_ids or ())
    if not allowed:
        return entries
    return [
        entry
        for entry in entries
        if entry.account_id in allowed
        or (isinstance(entry, Transfer) and entry.to_account_id in allowed)
    ]


def _instant(value: Optional[date]) -> float:
    if value is None:
        return 0.0
    if isinstance(value, datetime):
        return value.timestamp()
    return datetime.combine(value, time.min).timestamp()


def sort_by_recency(entries: Iterable[Entry]) -> list[Entry]:
    return sorted(
        entries,
        key=lambda entry: (_instant(entry.date), _instant(entry.created_at)),
        reverse=True,
    )


def category_label(entry: Entry) -> str:
    name = (getattr(entry, "category", "") or "").strip()
    if name:
        return name
    return "Income" if isinstance(entry, Income) else "Expense"
