# Overview: Pytest coverage for per-type, per-year document numbering.

"""
Document counter tests.

Verifies:
- Template formatting (prefix, year, zero padding)
- Per (type, year) sequences start at 1 and never repeat
- Configured prefixes and fallback prefixes
"""

import pytest

from wms.errors import ValidationError
from wms.models import DocumentCounter
from wms.services import document_service
from wms.services.concurrency import run_in_transaction


class TestFormatting:
    def test_default_template(self):
        assert document_service.format_document_number(
            "{PREFIX}-{YYYY}-{NNNN}", prefix="GRN", year=2026, number=7
        ) == "GRN-2026-0007"

    def test_number_wider_than_padding_is_not_truncated(self):
        assert document_service.format_document_number(
            "{PREFIX}-{YYYY}-{NNNN}", prefix="MI", year=2026, number=123456
        ) == "MI-2026-123456"

    def test_short_year_and_custom_pad(self):
        assert document_service.format_document_number(
            "{PREFIX}/{YY}/{NNNNNN}", prefix="WT", year=2031, number=42
        ) == "WT/31/000042"

    def test_template_without_number_is_rejected(self):
        with pytest.raises(ValidationError):
            document_service.format_document_number("{PREFIX}-{YYYY}", prefix="X", year=2026, number=1)


class TestSequence:
    def test_first_number_is_one_and_increments(self, db_session):
        values = [
            run_in_transaction(lambda: document_service.next_sequence_value("grn", year=2026))
            for _ in range(3)
        ]
        assert values == [1, 2, 3]

        counter = db_session.query(DocumentCounter).filter_by(document_type="grn", year=2026).one()
        assert counter.last_number == 3

    def test_years_and_types_are_independent(self, db_session):
        run_in_transaction(lambda: document_service.next_sequence_value("grn", year=2026))
        run_in_transaction(lambda: document_service.next_sequence_value("grn", year=2026))

        assert run_in_transaction(lambda: document_service.next_sequence_value("grn", year=2027)) == 1
        assert run_in_transaction(lambda: document_service.next_sequence_value("mi", year=2026)) == 1

    def test_rolled_back_allocation_is_not_kept(self, db_session):
        document_service.next_sequence_value("dr", year=2026)
        db_session.rollback()

        assert run_in_transaction(lambda: document_service.next_sequence_value("dr", year=2026)) == 1

    def test_next_document_number_uses_configured_prefix(self, app, db_session):
        number = document_service.allocate_document_number("qci")
        assert number.startswith("QCI-")
        assert number.endswith("-0001")

    def test_unknown_type_falls_back_to_uppercase_prefix(self, app, db_session):
        number = document_service.allocate_document_number("adj")
        assert number.startswith("ADJ-")

    def test_numbers_survive_document_cancellation(self, engine, db_session, staff):
        first = engine.create("grn", staff, warehouse_id=1, lines=[{"item_id": 1, "quantity": 1}])
        engine.transition(first, "cancel", staff)
        second = engine.create("grn", staff, warehouse_id=1, lines=[{"item_id": 1, "quantity": 1}])

        assert first.document_number != second.document_number
        assert second.document_number.endswith("-0002")
