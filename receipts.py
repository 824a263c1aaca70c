"""Receipt import: extraction result handling, review candidates and commit.

The vision provider is injected as a ``ReceiptParser``; nothing here talks to a
network service directly.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, time as dt_time
from typing import Any, Iterable, Optional, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from category_matcher import match_categories
from config import get_settings
from duplicates import (
    DuplicateCheckResult,
    DuplicateMatch,
    check_for_duplicates,
    find_duplicate,
)
from ledger import CategoryView, Entry
from schemas import (
    ExtractedTransaction,
    ParseResult,
    TransactionIn,
    parse_amount_cents,
)

logger = logging.getLogger(__name__)

NOTHING_DETECTED_MESSAGE = "No transactions detected in this image."
EXTRACTION_FAILED_MESSAGE = (
    "Could not read this image. Check that the receipt scanner is configured "
    "and try again."
)


class ReceiptParser(Protocol):
    def parse_image(self, image: bytes, mime_type: str) -> ParseResult: ...


class TransactionSink(Protocol):
    def create(self, payload: TransactionIn) -> Any: ...


def strip_code_fences(text: str) -> str:
    body = text.strip()
    if body.startswith("```json"):
        body = body[7:]
    elif body.startswith("```"):
        body = body[3:]
    if body.endswith("```"):
        body = body[:-3]
    return body.strip()


def parse_extraction_payload(
    text: str, *, id_prefix: Optional[str] = None
) -> ParseResult:
    prefix = id_prefix or f"extracted-{int(time.time() * 1000)}"
    try:
        payload = json.loads(strip_code_fences(text or ""))
    except json.JSONDecodeError:
        return ParseResult(
            success=False,
            error="Could not parse the extraction response",
            raw_response=text,
        )
    if not isinstance(payload, dict):
        return ParseResult(
            success=False, error="Unexpected extraction response", raw_response=text
        )
    if payload.get("error"):
        return ParseResult(
            success=False, error=str(payload["error"]), raw_response=text
        )

    transactions: list[ExtractedTransaction] = []
    for index, item in enumerate(payload.get("transactions") or []):
        if not isinstance(item, dict):
            continue
        try:
            transactions.append(
                ExtractedTransaction.model_validate({**item, "id": f"{prefix}-{index}"})
            )
        except ValidationError as exc:
            logger.warning(
                f"extraction_item_skipped: index={index} errors={exc.error_count()}"
            )
    return ParseResult(success=True, transactions=transactions, raw_response=text)


@dataclass(frozen=True)
class ImportCandidate:
    extracted: ExtractedTransaction
    category: str
    duplicate: Optional[DuplicateMatch] = None


@dataclass(frozen=True)
class ImportResult:
    success: bool
    candidates: tuple[ImportCandidate, ...] = ()
    message: Optional[str] = None
    duplicates: DuplicateCheckResult = field(default_factory=DuplicateCheckResult)

    @property
    def has_duplicates(self) -> bool:
        return self.duplicates.has_duplicates


@dataclass(frozen=True)
class CommitResult:
    saved: int
    failed: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failed == 0


class ImportPipeline:
    def __init__(
        self,
        parser: ReceiptParser,
        *,
        lookback_days: Optional[int] = None,
    ):
        self.parser = parser
        self.lookback_days = (
            lookback_days
            if lookback_days is not None
            else get_settings().duplicate_lookback_days
        )

    def _extract(self, image: bytes, mime_type: str) -> ParseResult:
        try:
            return self.parser.parse_image(image, mime_type)
        except Exception as exc:
            logger.warning(f"import_extract_failed: error={exc!r}")
            return ParseResult(success=False, error=str(exc) or None)

    def run(
        self,
        image: bytes,
        mime_type: str,
        categories: Sequence[CategoryView],
        existing: Sequence[Entry],
        *,
        now: Optional[datetime] = None,
    ) -> ImportResult:
        parsed = self._extract(image, mime_type)
        if not parsed.success:
            logger.info(f"import_run: status=failed error={parsed.error!r}")
            return ImportResult(
                success=False, message=parsed.error or EXTRACTION_FAILED_MESSAGE
            )
        if not parsed.transactions:
            logger.info("import_run: status=empty")
            return ImportResult(success=False, message=NOTHING_DETECTED_MESSAGE)

        matched = match_categories(parsed.transactions, categories)
        duplicates = check_for_duplicates(
            parsed.transactions, existing, self.lookback_days, now=now
        )
        candidates = tuple(
            ImportCandidate(
                extracted=item,
                category=matched[item.id],
                duplicate=find_duplicate(item.id, duplicates),
            )
            for item in parsed.transactions
        )
        logger.info(
            f"import_run: candidates={len(candidates)} "
            f"duplicates={len(duplicates.matches)}"
        )
        return ImportResult(success=True, candidates=candidates, duplicates=duplicates)


def draft_from_candidate(
    candidate: ImportCandidate,
    *,
    account_id: int,
    category_ids: dict[str, int],
) -> TransactionIn:
    item = candidate.extracted
    return TransactionIn(
        occurred_at=datetime.combine(item.date, dt_time(12, 0)),
        type=item.type,
        amount_cents=parse_amount_cents(item.amount),
        account_id=account_id,
        category_id=category_ids.get(candidate.category),
        note=item.note or None,
        location=item.location,
    )


def commit_reviewed(
    service: TransactionSink, drafts: Iterable[TransactionIn]
) -> CommitResult:
    drafts = list(drafts)
    saved = 0
    for draft in drafts:
        try:
            service.create(draft)
        except (ValueError, SQLAlchemyError) as exc:
            logger.warning(
                f"import_commit: saved={saved} failed={len(drafts) - saved} error={exc}"
            )
            return CommitResult(saved=saved, failed=len(drafts) - saved, error=str(exc))
        saved += 1
    logger.info(f"import_commit: saved={saved}")
    return CommitResult(saved=saved)
