# Overview: Display-id allocation (PREFIX-YYYY-NNNN) per document kind and year.

"""
Sequence Id Issuer

Allocates human-readable display ids such as "QTN-2025-0007".

STRATEGIES:
- counter (default): one row per (prefix, year) in document_sequences. The
  increment and the read of the reserved number are a single UPDATE ...
  RETURNING statement (or UPDATE then read of the row the UPDATE just locked,
  on dialects without UPDATE RETURNING). The row is created lazily on first
  use of a year, seeded from the highest display id already stored, so rows
  that predate the counter are never re-issued.
- scan: next number is max(existing) + 1. Only safe together with the unique
  constraint on documents.display_id and the bounded create retry in the
  document service.

The counter strategy falls back to scan when the counter statement fails with
a database error (missing table, lock timeout). allocate() may roll back the
session in that case, so it must be the first write of its transaction.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from ..kinds import get_kind
from ..models import Document, DocumentSequence
from .errors import SequenceGenerationFailure

logger = logging.getLogger(__name__)

STRATEGY_COUNTER = "counter"
STRATEGY_SCAN = "scan"
STRATEGIES = {STRATEGY_COUNTER, STRATEGY_SCAN}

DISPLAY_ID_PATTERN = re.compile(r"^([A-Z]{2,4})-(\d{4})-(\d{4})$")
MAX_SEQUENCE_NUMBER = 9999

DISPLAY_ID_CONSTRAINT = "uq_documents_display_id"


def format_display_id(prefix: str, year: int, number: int) -> str:
    if number > MAX_SEQUENCE_NUMBER:
        raise SequenceGenerationFailure(
            f"Sequence for {prefix}-{year} is exhausted",
            details={"prefix": prefix, "year": year, "number": number},
        )
    return f"{prefix}-{year:04d}-{number:04d}"


def parse_sequence_number(display_id: str | None) -> int | None:
    """Numeric suffix of a display id, or None for malformed / legacy values."""
    if not display_id:
        return None
    match = DISPLAY_ID_PATTERN.match(display_id)
    if not match:
        return None
    return int(match.group(3))


def is_display_id_collision(exc: IntegrityError) -> bool:
    """True when an IntegrityError came from the display_id unique constraint."""
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return DISPLAY_ID_CONSTRAINT in message or "documents.display_id" in message


class SequenceIdIssuer:
    def __init__(self, session, *, strategy: str = STRATEGY_COUNTER):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown sequence strategy '{strategy}'")
        self.session = session
        self.strategy = strategy

    def allocate(self, kind: str, year: int) -> str:
        """Reserve and return the next display id for (kind, year)."""
        prefix = get_kind(kind).prefix

        if self.strategy == STRATEGY_COUNTER:
            try:
                number = self._allocate_from_counter(prefix, year)
                return format_display_id(prefix, year, number)
            except (OperationalError, ProgrammingError) as exc:
                self.session.rollback()
                logger.warning(
                    "Sequence counter unavailable for %s-%s, falling back to scan: %s",
                    prefix, year, getattr(exc, "orig", exc),
                )

        number = self.max_issued_number(prefix, year) + 1
        return format_display_id(prefix, year, number)

    def max_issued_number(self, prefix: str, year: int) -> int:
        """Highest sequence number stored in documents for (prefix, year), 0 if none."""
        highest = self.session.execute(
            select(func.max(Document.display_id)).where(
                Document.display_id.like(f"{prefix}-{year:04d}-%")
            )
        ).scalar()
        return parse_sequence_number(highest) or 0

    # ------------------------------------------------------------------
    # Counter strategy
    # ------------------------------------------------------------------

    def _increment_stmt(self, prefix: str, year: int):
        return (
            update(DocumentSequence)
            .where(DocumentSequence.prefix == prefix, DocumentSequence.year == year)
            .values(next_number=DocumentSequence.next_number + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

    def _allocate_from_counter(self, prefix: str, year: int) -> int:
        dialect = self.session.get_bind().dialect

        if getattr(dialect, "update_returning", False):
            stmt = self._increment_stmt(prefix, year).returning(DocumentSequence.next_number)
            row = self.session.execute(stmt).first()
            if row is None:
                self._ensure_counter(prefix, year)
                row = self.session.execute(stmt).first()
            if row is None:
                raise SequenceGenerationFailure(f"Could not create sequence counter for {prefix}-{year}")
            return row[0] - 1

        result = self.session.execute(self._increment_stmt(prefix, year))
        if not result.rowcount:
            self._ensure_counter(prefix, year)
            result = self.session.execute(self._increment_stmt(prefix, year))
            if not result.rowcount:
                raise SequenceGenerationFailure(f"Could not create sequence counter for {prefix}-{year}")
        # The UPDATE above holds the row lock until commit, so this read sees
        # our own increment and nobody else's.
        current = self.session.execute(
            select(DocumentSequence.next_number).where(
                DocumentSequence.prefix == prefix, DocumentSequence.year == year
            )
        ).scalar_one()
        return current - 1

    def _ensure_counter(self, prefix: str, year: int) -> None:
        """Create the (prefix, year) counter if missing, seeded past existing rows."""
        seed = self.max_issued_number(prefix, year) + 1
        values = {"prefix": prefix, "year": year, "next_number": seed}
        dialect_name = self.session.get_bind().dialect.name

        if dialect_name in ("sqlite", "postgresql"):
            if dialect_name == "sqlite":
                from sqlalchemy.dialects.sqlite import insert
            else:
                from sqlalchemy.dialects.postgresql import insert
            stmt = insert(DocumentSequence).values(**values).on_conflict_do_nothing(
                index_elements=["prefix", "year"]
            )
            self.session.execute(stmt)
        else:
            try:
                with self.session.begin_nested():
                    self.session.add(DocumentSequence(**values))
            except IntegrityError:
                # Another allocator created it first; its row is what we want.
                pass

        if seed > 1:
            logger.info("Seeded sequence counter %s-%s at %d from existing documents", prefix, year, seed)

    # ------------------------------------------------------------------
    # Inspection / repair
    # ------------------------------------------------------------------

    def peek(self, kind: str, year: int) -> dict:
        prefix = get_kind(kind).prefix
        counter = self.session.execute(
            select(DocumentSequence).where(DocumentSequence.prefix == prefix, DocumentSequence.year == year)
        ).scalar_one_or_none()
        return {
            "kind": kind,
            "prefix": prefix,
            "year": year,
            "next_number": counter.next_number if counter else None,
            "max_issued_number": self.max_issued_number(prefix, year),
        }

    def resync(self, kind: str, year: int) -> int:
        """
        Move the counter past the highest stored display id.

        Never moves a counter backwards, so numbers already handed out (even
        for rolled-back creates) are not reissued. Returns the new next_number.
        """
        prefix = get_kind(kind).prefix
        floor = self.max_issued_number(prefix, year) + 1
        counter = self.session.execute(
            select(DocumentSequence)
            .where(DocumentSequence.prefix == prefix, DocumentSequence.year == year)
            .with_for_update()
        ).scalar_one_or_none()
        if counter is None:
            counter = DocumentSequence(prefix=prefix, year=year, next_number=floor)
            self.session.add(counter)
        elif counter.next_number < floor:
            counter.next_number = floor
        self.session.flush()
        return counter.next_number


class DisplayIdCollision(Exception):
    """A document insert hit the display_id unique constraint; the create may be retried."""
