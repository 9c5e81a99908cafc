"""
Tests for document numbers and the counter table.

Covers:
- Formatting and parsing PREFIX-YYYY-MM-NNNNN
- Monthly counters per prefix
"""

from datetime import date

import pytest

from estate_kernel.domain.identifiers import (
    DocumentKind,
    counter_name,
    format_document_number,
    parse_document_number,
)
from estate_kernel.exceptions import ValidationError
from estate_kernel.services.sequence_service import SequenceService


class TestFormatting:
    def test_format(self):
        assert format_document_number(DocumentKind.RECEIPT, date(2024, 2, 9), 7) == "RCP-2024-02-00007"

    def test_parse_round_trip(self):
        number = parse_document_number("SAL-2024-12-00042")
        assert number.kind == DocumentKind.SALE
        assert (number.year, number.month, number.sequence) == (2024, 12, 42)
        assert str(number) == "SAL-2024-12-00042"

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_document_number("INV-2024-01-1")

    def test_counter_name(self):
        assert counter_name(DocumentKind.EXPENSE, date(2024, 3, 31)) == "EXP-2024-03"


class TestSequenceService:
    def test_numbers_increase_per_month_and_prefix(self, session):
        sequences = SequenceService(session)
        jan = date(2024, 1, 20)
        assert sequences.next_document_number(DocumentKind.RECEIPT, jan) == "RCP-2024-01-00001"
        assert sequences.next_document_number(DocumentKind.RECEIPT, jan) == "RCP-2024-01-00002"
        assert sequences.next_document_number(DocumentKind.SALE, jan) == "SAL-2024-01-00001"
        assert sequences.next_document_number(DocumentKind.RECEIPT, date(2024, 2, 1)) == "RCP-2024-02-00001"
        assert sequences.current_value("RCP-2024-01") == 2
        session.commit()

    def test_unknown_counter(self, session):
        assert SequenceService(session).current_value("RFD-1999-01") is None
