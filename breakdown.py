from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from ledger import Entry, Expense, Income, category_label, safe_amount
from models import TransactionType
from reporting import share_percentage

OTHERS_LABEL = "Others"
DEFAULT_TOP_N = 3


@dataclass(frozen=True)
class CategoryShare:
    category: str
    amount: float
    percentage: int


def category_totals(
    entries: Iterable[Entry], transaction_type: TransactionType
) -> list[tuple[str, float]]:
    wanted = Income if transaction_type == TransactionType.income else Expense
    totals: dict[str, float] = {}
    for entry in entries:
        if not isinstance(entry, wanted) or entry.exclude_from_reports:
            continue
        label = category_label(entry)
        totals[label] = totals.get(label, 0.0) + safe_amount(entry.amount)
    # Stable on ties: first-seen category wins.
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def category_breakdown(
    entries: Iterable[Entry],
    transaction_type: TransactionType,
    *,
    top_n: Optional[int] = None,
) -> list[CategoryShare]:
    ranked = category_totals(entries, transaction_type)
    grand_total = sum(amount for _, amount in ranked)

    rows: list[tuple[str, float]] = ranked
    if top_n is not None and len(ranked) > top_n:
        rows = ranked[:top_n]
        remainder = sum(amount for _, amount in ranked[top_n:])
        if remainder > 0:
            rows = rows + [(OTHERS_LABEL, remainder)]

    return [
        CategoryShare(
            category=name,
            amount=amount,
            percentage=share_percentage(amount, grand_total),
        )
        for name, amount in rows
    ]
