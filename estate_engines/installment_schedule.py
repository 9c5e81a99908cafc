"""
Module: estate_engines.installment_schedule
Responsibility:
    Generate dated installment schedules and classify a line's status.
    Shared by sale installments and cancellation refund schedules.

Architecture position:
    Engines -- pure, zero I/O.  The caller passes ``today``.

Invariants enforced:
    - A generated schedule's amounts sum exactly to the requested total:
      every line is the total divided by the count rounded half-up to two
      places, and the final line absorbs the remainder.
    - Line n (1-based) is due ``start + (n - 1) * interval`` months, the day
      clamped to the end of shorter months.
    - Sequence numbers are 1..count.

Failure modes:
    - ValidationError for count < 1 or a non-positive total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from dateutil.relativedelta import relativedelta

from estate_engines.tracer import traced_engine
from estate_kernel.db.types import round_money
from estate_kernel.exceptions import ValidationError

ZERO = Decimal("0")


class InstallmentFrequency(str, Enum):
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    HALF_YEARLY = "HalfYearly"
    YEARLY = "Yearly"

    @property
    def months(self) -> int:
        return _FREQUENCY_MONTHS[self]


_FREQUENCY_MONTHS = {
    InstallmentFrequency.MONTHLY: 1,
    InstallmentFrequency.QUARTERLY: 3,
    InstallmentFrequency.HALF_YEARLY: 6,
    InstallmentFrequency.YEARLY: 12,
}


class InstallmentStatus(str, Enum):
    PENDING = "Pending"
    PARTIAL = "Partial"
    OVERDUE = "Overdue"
    MISSED = "Missed"
    PAID = "Paid"


@dataclass(frozen=True)
class ScheduledLine:
    sequence: int
    due_date: date
    amount: Decimal


def split_evenly(total: Decimal, count: int) -> list[Decimal]:
    """Equal two-place shares; the last share takes the rounding remainder."""
    if count < 1:
        raise ValidationError(f"Installment count must be at least 1, got {count}", field="count")
    share = round_money(total / count)
    shares = [share] * (count - 1)
    shares.append(total - share * (count - 1))
    return shares


@traced_engine(
    "installment_schedule", "1.0",
    fingerprint_fields=("total", "count", "frequency", "start_date"),
)
def generate_schedule(
    *,
    total: Decimal,
    count: int,
    frequency: InstallmentFrequency,
    start_date: date,
) -> tuple[ScheduledLine, ...]:
    if total <= ZERO:
        raise ValidationError(f"Schedule total must be positive, got {total}", field="total")
    shares = split_evenly(total, count)
    step = frequency.months
    return tuple(
        ScheduledLine(
            sequence=index + 1,
            due_date=start_date + relativedelta(months=index * step),
            amount=shares[index],
        )
        for index in range(count)
    )


def line_status(
    amount: Decimal,
    paid: Decimal,
    due_date: date,
    today: date,
    missed_after_days: int = 30,
) -> InstallmentStatus:
    """
    Status of one line on ``today``.

    Paid when fully covered; a partly paid line is Partial, or Overdue once
    past due; an unpaid line past due is Overdue, then Missed after
    ``missed_after_days``.
    """
    if paid >= amount:
        return InstallmentStatus.PAID
    past_due = due_date < today
    if paid > ZERO:
        return InstallmentStatus.OVERDUE if past_due else InstallmentStatus.PARTIAL
    if past_due:
        if (today - due_date).days > missed_after_days:
            return InstallmentStatus.MISSED
        return InstallmentStatus.OVERDUE
    return InstallmentStatus.PENDING
