"""Score extracted receipt candidates against recently recorded transactions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from ledger import Entry, safe_amount
from periods import local_now
from schemas import ExtractedTransaction

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.5
MIN_REASONS = 2


@dataclass(frozen=True)
class DuplicateMatch:
    extracted_id: str
    existing: Entry
    confidence: float
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class DuplicateCheckResult:
    matches: tuple[DuplicateMatch, ...] = ()

    @property
    def has_duplicates(self) -> bool:
        return bool(self.matches)


def note_similarity(first: Optional[str], second: Optional[str]) -> float:
    a = (first or "").strip().lower()
    b = (second or "").strip().lower()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    words_a = {word for word in a.split() if len(word) > 2}
    words_b = {word for word in b.split() if len(word) > 2}
    largest = max(len(words_a), len(words_b))
    if largest == 0:
        return 0.0
    return len(words_a & words_b) / largest


def _amount_signal(extracted: float, existing: float) -> tuple[float, Optional[str]]:
    diff = abs(extracted - existing)
    if diff < 0.01:
        return 0.4, "Exact amount match"
    largest = max(extracted, existing)
    if largest > 0 and diff / largest < 0.05:
        return 0.2, "Similar amount"
    return 0.0, None


def _date_signal(extracted: date, existing: date) -> tuple[float, Optional[str]]:
    days = abs((extracted - existing).days)
    if days == 0:
        return 0.35, "Same date"
    if days <= 1:
        return 0.2, "Adjacent date (±1 day)"
    if days <= 3:
        return 0.1, "Close date (±3 days)"
    return 0.0, None


def _note_signal(extracted: str, existing: str) -> tuple[float, Optional[str]]:
    similarity = note_similarity(extracted, existing)
    if similarity > 0.7:
        return 0.25, "Similar description"
    if similarity > 0.4:
        return 0.1, "Some description overlap"
    return 0.0, None


def score_candidate(
    extracted: ExtractedTransaction, existing: Entry
) -> Optional[DuplicateMatch]:
    if extracted.type != existing.type:
        return None

    score = 0.0
    reasons: list[str] = []
    signals = [
        _amount_signal(safe_amount(extracted.amount), safe_amount(existing.amount)),
        _note_signal(extracted.note, existing.note),
    ]
    if existing.day is not None:
        signals.insert(1, _date_signal(extracted.date, existing.day))

    for points, reason in signals:
        if reason:
            score += points
            reasons.append(reason)

    suggested = (extracted.suggested_category or "").strip().lower()
    recorded = (getattr(existing, "category", "") or "").strip().lower()
    if suggested and suggested == recorded:
        score += 0.1
        reasons.append("Same category")

    score = round(score, 4)
    if score < MATCH_THRESHOLD or len(reasons) < MIN_REASONS:
        return None
    return DuplicateMatch(
        extracted_id=extracted.id,
        existing=existing,
        confidence=min(1.0, score),
        reasons=tuple(reasons),
    )


def _recent(
    existing: Iterable[Entry], lookback_days: int, now: datetime
) -> list[Entry]:
    cutoff = (now - timedelta(days=lookback_days)).date()
    return [entry for entry in existing if entry.day is not None and entry.day > cutoff]


def check_for_duplicates(
    extracted: Sequence[ExtractedTransaction],
    existing: Sequence[Entry],
    lookback_days: int = 30,
    now: Optional[datetime] = None,
) -> DuplicateCheckResult:
    now = now or local_now()
    candidates = _recent(existing, lookback_days, now)

    matches: list[DuplicateMatch] = []
    for item in extracted:
        best: Optional[DuplicateMatch] = None
        for entry in candidates:
            match = score_candidate(item, entry)
            if match and (best is None or match.confidence > best.confidence):
                best = match
        if best:
            matches.append(best)

    logger.debug(
        f"duplicate_check: extracted={len(extracted)} "
        f"candidates={len(candidates)} matches={len(matches)}"
    )
    return DuplicateCheckResult(matches=tuple(matches))


def find_duplicate(
    extracted_id: str, result: DuplicateCheckResult
) -> Optional[DuplicateMatch]:
    for match in result.matches:
        if match.extracted_id == extracted_id:
            return match
    return None


def duplicate_warning(match: DuplicateMatch) -> str:
    existing = match.existing
    percentage = round(match.confidence * 100)
    when = "unknown date"
    if existing.day is not None:
        when = f"{existing.day:%b} {existing.day.day}"
    return (
        f"Possible duplicate ({percentage}% match): {existing.note} - "
        f"${safe_amount(existing.amount):.2f} on {when}"
    )
