"""Cheque register domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ChequeStatus(str, Enum):
    PENDING = "Pending"
    DUE_TODAY = "Due Today"
    OVERDUE = "Overdue"
    CLEARED = "Cleared"
    BOUNCED = "Bounced"
    CANCELLED = "Cancelled"

    @property
    def is_open(self) -> bool:
        return self in OPEN_CHEQUE_STATUSES


OPEN_CHEQUE_STATUSES = frozenset({
    ChequeStatus.PENDING,
    ChequeStatus.DUE_TODAY,
    ChequeStatus.OVERDUE,
})


class ChequeType(str, Enum):
    PDC = "PDC"
    CURRENT = "Current"


def status_for_date(due_date: date, today: date) -> ChequeStatus:
    """Where an open cheque stands on ``today``."""
    if due_date == today:
        return ChequeStatus.DUE_TODAY
    if due_date < today:
        return ChequeStatus.OVERDUE
    return ChequeStatus.PENDING


@dataclass(frozen=True)
class Cheque:
    id: UUID
    cheque_number: str
    bank_name: str
    branch_name: str | None
    cheque_type: ChequeType
    issue_date: date
    due_date: date
    amount: Decimal
    client_id: UUID
    sale_id: UUID | None
    receipt_id: UUID | None
    refund_line_id: UUID | None
    status: ChequeStatus
    cleared_date: date | None
    bounce_date: date | None
    bounce_reason: str | None
    cancelled_date: date | None
    cancel_reason: str | None
    notes: str | None

    def days_until_due(self, today: date) -> int:
        return (self.due_date - today).days


@dataclass(frozen=True)
class ChequeStats:
    total_count: int
    total_amount: Decimal
    counts: dict[ChequeStatus, int]
    amounts: dict[ChequeStatus, Decimal]

    @property
    def cleared_amount(self) -> Decimal:
        return self.amounts[ChequeStatus.CLEARED]

    @property
    def pending_amount(self) -> Decimal:
        """Money still waiting on the bank: Pending, Due Today and Overdue."""
        return sum((self.amounts[s] for s in OPEN_CHEQUE_STATUSES), Decimal("0"))
