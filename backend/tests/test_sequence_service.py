# Overview: Pytest coverage for display-id allocation.

"""
Sequence Id Issuer Tests

- First id of a (kind, year) is 0001; the next is 0002
- A new year restarts at 0001; kinds never share a sequence
- Counters created lazily are seeded past documents that predate them
- The scan strategy and the counter -> scan fallback
- Exhaustion past 9999
- resync / peek repair helpers
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from backoffice.models import Document, DocumentSequence
from backoffice.services.errors import SequenceGenerationFailure
from backoffice.services.sequence_service import (
    STRATEGY_SCAN,
    SequenceIdIssuer,
    format_display_id,
    is_display_id_collision,
    parse_sequence_number,
)


def _stored_document(session, display_id, kind="quotation", year=2025):
    """Insert a document row directly, bypassing the issuer."""
    doc = Document(kind=kind, display_id=display_id, issued_year=year, display_name="", status="draft")
    session.add(doc)
    session.commit()
    return doc


class TestFormatting:
    def test_format_pads_year_and_number(self):
        assert format_display_id("QTN", 2025, 7) == "QTN-2025-0007"

    def test_format_rejects_numbers_past_9999(self):
        with pytest.raises(SequenceGenerationFailure):
            format_display_id("QTN", 2025, 10000)

    def test_parse_sequence_number(self):
        assert parse_sequence_number("INV-2024-0123") == 123
        assert parse_sequence_number("legacy-42") is None
        assert parse_sequence_number(None) is None

    def test_collision_detection_matches_display_id_constraint(self):
        hit = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: documents.display_id"))
        other = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: documents.kind"))
        assert is_display_id_collision(hit)
        assert not is_display_id_collision(other)


class TestCounterStrategy:
    def test_first_and_second_allocation(self, db_session):
        issuer = SequenceIdIssuer(db_session)
        assert issuer.allocate("quotation", 2025) == "QTN-2025-0001"
        db_session.commit()
        assert issuer.allocate("quotation", 2025) == "QTN-2025-0002"
        db_session.commit()

    def test_new_year_restarts_at_one(self, db_session):
        issuer = SequenceIdIssuer(db_session)
        issuer.allocate("quotation", 2025)
        issuer.allocate("quotation", 2025)
        assert issuer.allocate("quotation", 2026) == "QTN-2026-0001"
        db_session.commit()

    def test_kinds_have_independent_sequences(self, db_session):
        issuer = SequenceIdIssuer(db_session)
        assert issuer.allocate("quotation", 2025) == "QTN-2025-0001"
        assert issuer.allocate("invoice", 2025) == "INV-2025-0001"
        assert issuer.allocate("erha", 2025) == "ERH-2025-0001"
        db_session.commit()

    def test_counter_is_seeded_from_existing_documents(self, db_session):
        _stored_document(db_session, "QTN-2025-0041")

        issuer = SequenceIdIssuer(db_session)
        assert issuer.allocate("quotation", 2025) == "QTN-2025-0042"
        db_session.commit()

        counter = db_session.query(DocumentSequence).filter_by(prefix="QTN", year=2025).one()
        assert counter.next_number == 43

    def test_seed_ignores_other_years(self, db_session):
        _stored_document(db_session, "QTN-2024-0300", year=2024)

        issuer = SequenceIdIssuer(db_session)
        assert issuer.allocate("quotation", 2025) == "QTN-2025-0001"

    def test_rolled_back_allocation_is_reissued(self, db_session):
        issuer = SequenceIdIssuer(db_session)
        issuer.allocate("invoice", 2025)
        db_session.commit()

        assert issuer.allocate("invoice", 2025) == "INV-2025-0002"
        db_session.rollback()

        assert issuer.allocate("invoice", 2025) == "INV-2025-0002"
        db_session.commit()

    def test_counter_failure_falls_back_to_scan(self, db_session):
        _stored_document(db_session, "PLN-2025-0005", kind="planning")
        issuer = SequenceIdIssuer(db_session)

        failure = OperationalError("UPDATE document_sequences", {}, Exception("database is locked"))
        with patch.object(issuer, "_allocate_from_counter", side_effect=failure):
            assert issuer.allocate("planning", 2025) == "PLN-2025-0006"

    def test_exhausted_sequence_raises(self, db_session):
        _stored_document(db_session, "QTN-2025-9999")
        issuer = SequenceIdIssuer(db_session)

        with pytest.raises(SequenceGenerationFailure):
            issuer.allocate("quotation", 2025)


class TestScanStrategy:
    def test_scan_uses_max_existing_plus_one(self, db_session):
        _stored_document(db_session, "EXP-2025-0007", kind="expense")
        _stored_document(db_session, "EXP-2025-0003", kind="expense")

        issuer = SequenceIdIssuer(db_session, strategy=STRATEGY_SCAN)
        assert issuer.allocate("expense", 2025) == "EXP-2025-0008"
        assert db_session.query(DocumentSequence).count() == 0

    def test_scan_starts_at_one(self, db_session):
        issuer = SequenceIdIssuer(db_session, strategy=STRATEGY_SCAN)
        assert issuer.allocate("expense", 2025) == "EXP-2025-0001"

    def test_unknown_strategy_rejected(self, db_session):
        with pytest.raises(ValueError):
            SequenceIdIssuer(db_session, strategy="random")


class TestRepair:
    def test_resync_moves_counter_past_stored_rows(self, db_session):
        issuer = SequenceIdIssuer(db_session)
        issuer.allocate("quotation", 2025)
        db_session.commit()

        # Row written behind the counter's back
        _stored_document(db_session, "QTN-2025-0010")

        assert issuer.resync("quotation", 2025) == 11
        db_session.commit()
        assert issuer.allocate("quotation", 2025) == "QTN-2025-0011"

    def test_resync_never_moves_backwards(self, db_session):
        db_session.add(DocumentSequence(prefix="QTN", year=2025, next_number=20))
        db_session.commit()
        _stored_document(db_session, "QTN-2025-0004")

        issuer = SequenceIdIssuer(db_session)
        assert issuer.resync("quotation", 2025) == 20

    def test_resync_creates_missing_counter(self, db_session):
        _stored_document(db_session, "INV-2025-0002", kind="invoice")

        issuer = SequenceIdIssuer(db_session)
        assert issuer.resync("invoice", 2025) == 3
        db_session.commit()
        assert db_session.query(DocumentSequence).filter_by(prefix="INV", year=2025).count() == 1

    def test_peek_reports_counter_and_stored_max(self, db_session):
        issuer = SequenceIdIssuer(db_session)
        issuer.allocate("paragon", 2025)
        issuer.allocate("paragon", 2025)
        db_session.commit()

        state = issuer.peek("paragon", 2025)
        assert state["prefix"] == "PRG"
        assert state["next_number"] == 3
        assert state["max_issued_number"] == 0

    def test_peek_without_counter(self, db_session):
        state = SequenceIdIssuer(db_session).peek("erha", 2030)
        assert state["next_number"] is None
