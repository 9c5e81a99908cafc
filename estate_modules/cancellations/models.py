"""Cancellation and refund domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from estate_engines.settlement import CancellationStatus, Reconciliation
from estate_kernel.domain.approval import ApprovalStatus
from estate_kernel.domain.ledger import PaymentMethod

__all__ = [
    "Cancellation",
    "CancellationStats",
    "CancellationStatus",
    "Reconciliation",
    "RefundLine",
    "RefundPaymentStatus",
]


class RefundPaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class Cancellation:
    id: UUID
    sale_id: UUID
    client_id: UUID
    reason: str
    cancellation_date: date
    total_paid: Decimal
    office_charge_percent: Decimal
    office_charge_amount: Decimal
    other_deductions: Decimal
    refundable_amount: Decimal
    refunded_amount: Decimal
    remaining_refund: Decimal
    status: CancellationStatus
    rejection_reason: str | None


@dataclass(frozen=True)
class RefundLine:
    id: UUID
    cancellation_id: UUID
    refund_number: str
    sequence: int
    due_date: date
    amount: Decimal
    approval_status: ApprovalStatus
    payment_status: RefundPaymentStatus
    payment_method: PaymentMethod | None
    paid_date: date | None
    posted_to_ledger: bool


@dataclass(frozen=True)
class CancellationStats:
    total: int
    by_status: dict[CancellationStatus, int]
    total_paid: Decimal
    office_charges: Decimal
    refundable: Decimal
    refunded: Decimal
    remaining: Decimal
