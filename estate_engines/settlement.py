"""
Module: estate_engines.settlement
Responsibility:
    Cancellation arithmetic: office charge, refundable amount, refund
    progress status, and the reconciliation between refundable amount and
    the generated refund schedule.

Architecture position:
    Engines -- pure.  CancellationService persists what these return.

Invariants enforced:
    - office_charge = total_paid * pct / 100 (two places, half-up).
    - refundable = total_paid - office_charge - other_deductions, never
      negative.
    - Status after a payment: Refunded when nothing remains, PartialRefund
      when something was refunded, otherwise the status is left alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable

from estate_engines.tracer import traced_engine
from estate_kernel.db.types import round_money
from estate_kernel.exceptions import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class CancellationStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    REFUNDED = "Refunded"
    PARTIAL_REFUND = "PartialRefund"


@dataclass(frozen=True)
class SettlementTerms:
    total_paid: Decimal
    office_charge_percent: Decimal
    office_charge_amount: Decimal
    other_deductions: Decimal
    refundable_amount: Decimal


@dataclass(frozen=True)
class RefundProgress:
    refunded: Decimal
    remaining: Decimal
    status: CancellationStatus


@dataclass(frozen=True)
class Reconciliation:
    refundable_amount: Decimal
    scheduled_total: Decimal
    discrepancy: Decimal

    @property
    def balanced(self) -> bool:
        return self.discrepancy == ZERO


@traced_engine(
    "settlement", "1.0",
    fingerprint_fields=("total_paid", "office_charge_percent", "other_deductions"),
)
def compute_settlement(
    *,
    total_paid: Decimal,
    office_charge_percent: Decimal,
    other_deductions: Decimal = ZERO,
) -> SettlementTerms:
    """
    Raises:
        ValidationError: percent outside 0..100, negative deductions, or
            deductions that exceed what is left after the office charge.
    """
    if not ZERO <= office_charge_percent <= HUNDRED:
        raise ValidationError(
            f"Office charge percent must be within 0..100, got {office_charge_percent}",
            field="office_charge_percent",
        )
    if other_deductions < ZERO:
        raise ValidationError("Other deductions cannot be negative", field="other_deductions")
    if total_paid < ZERO:
        raise ValidationError("Total paid cannot be negative", field="total_paid")

    office_charge = round_money(total_paid * office_charge_percent / HUNDRED)
    refundable = total_paid - office_charge - other_deductions
    if refundable < ZERO:
        raise ValidationError(
            f"Deductions {office_charge + other_deductions} exceed total paid {total_paid}",
            field="other_deductions",
        )
    return SettlementTerms(
        total_paid=total_paid,
        office_charge_percent=office_charge_percent,
        office_charge_amount=office_charge,
        other_deductions=other_deductions,
        refundable_amount=refundable,
    )


def refund_progress(
    refundable_amount: Decimal,
    paid_amounts: Iterable[Decimal],
    current: CancellationStatus,
) -> RefundProgress:
    refunded = sum(paid_amounts, ZERO)
    remaining = refundable_amount - refunded
    if remaining <= ZERO:
        status = CancellationStatus.REFUNDED
    elif refunded > ZERO:
        status = CancellationStatus.PARTIAL_REFUND
    else:
        status = current
    return RefundProgress(refunded=refunded, remaining=remaining, status=status)


def reconcile(refundable_amount: Decimal, scheduled_amounts: Iterable[Decimal]) -> Reconciliation:
    scheduled = sum(scheduled_amounts, ZERO)
    return Reconciliation(
        refundable_amount=refundable_amount,
        scheduled_total=scheduled,
        discrepancy=refundable_amount - scheduled,
    )
