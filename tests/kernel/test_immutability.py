"""Ledger rows and approval history cannot be rewritten through the ORM."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from estate_engines.ledger_pairs import sale_posting
from estate_kernel.exceptions import ImmutabilityViolationError
from estate_kernel.models.ledger import LedgerEntryModel
from estate_kernel.services.ledger_service import LedgerService


@pytest.fixture
def posted_entry(session, deterministic_clock):
    LedgerService(session, deterministic_clock).post(
        sale_posting(
            sale_id=uuid4(), sale_number="SAL-2024-01-00001", client_id=None,
            total_price=Decimal("500000"), transaction_date=date(2024, 1, 15),
        ),
        uuid4(),
    )
    session.commit()
    return session.execute(select(LedgerEntryModel).limit(1)).scalar_one()


class TestLedgerImmutability:
    def test_update_rejected(self, session, posted_entry, captured_logs):
        posted_entry.description = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc:
            session.flush()
        session.rollback()
        assert exc.value.code == "IMMUTABILITY_VIOLATION"
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_delete_rejected(self, session, posted_entry):
        session.delete(posted_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
