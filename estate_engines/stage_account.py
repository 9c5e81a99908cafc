"""
Module: estate_engines.stage_account
Responsibility:
    Recompute a sale's paid/due totals and every stage's due amount and
    status from the stages' received amounts.

Architecture position:
    Engines -- pure.  SalesService calls ``recompute_sale`` after every
    change to any stage's received amount and writes the result back.

Invariants enforced:
    - paid = sum(stage.received); due = total_price - paid.
    - Stage status: Completed if received >= planned, Partial if received > 0,
      Overdue if the expected date has passed, else Pending.
    - completed_date is set once and never moved.
    - Sale becomes Completed once paid >= total_price (Cancelled sales
      excepted); an OnHold sale stays on hold until then.
    - The recompute is a full recalculation, never an increment, so running
      it twice gives the same result.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum

from estate_engines.tracer import traced_engine
from estate_kernel.exceptions import ValidationError

ZERO = Decimal("0")


class StageName(str, Enum):
    BOOKING = "Booking"
    INSTALLMENTS = "Installments"
    REGISTRATION = "Registration"
    HANDOVER = "Handover"
    OTHER = "Other"


STAGE_ORDER: tuple[StageName, ...] = (
    StageName.BOOKING,
    StageName.INSTALLMENTS,
    StageName.REGISTRATION,
    StageName.HANDOVER,
    StageName.OTHER,
)


class StageStatus(str, Enum):
    PENDING = "Pending"
    PARTIAL = "Partial"
    COMPLETED = "Completed"
    OVERDUE = "Overdue"


class SaleStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    ON_HOLD = "OnHold"


@dataclass(frozen=True)
class StageState:
    name: StageName
    planned: Decimal
    received: Decimal = ZERO
    expected_date: date | None = None
    completed_date: date | None = None
    status: StageStatus = StageStatus.PENDING

    @property
    def due(self) -> Decimal:
        return self.planned - self.received


@dataclass(frozen=True)
class SaleTotals:
    paid: Decimal
    due: Decimal
    status: SaleStatus
    stages: tuple[StageState, ...]


def stage_status(stage: StageState, today: date) -> StageStatus:
    if stage.received >= stage.planned:
        return StageStatus.COMPLETED
    if stage.received > ZERO:
        return StageStatus.PARTIAL
    if stage.expected_date is not None and stage.expected_date < today:
        return StageStatus.OVERDUE
    return StageStatus.PENDING


def _recompute_stage(stage: StageState, today: date) -> StageState:
    status = stage_status(stage, today)
    completed_date = stage.completed_date
    if status == StageStatus.COMPLETED and completed_date is None:
        completed_date = today
    return replace(stage, status=status, completed_date=completed_date)


def next_sale_status(current: SaleStatus, paid: Decimal, total_price: Decimal) -> SaleStatus:
    if current == SaleStatus.CANCELLED:
        return current
    if paid >= total_price:
        return SaleStatus.COMPLETED
    if current == SaleStatus.ON_HOLD:
        return current
    return SaleStatus.ACTIVE


@traced_engine("stage_account", "1.0", fingerprint_fields=("total_price", "today"))
def recompute_sale(
    *,
    total_price: Decimal,
    status: SaleStatus,
    stages: tuple[StageState, ...],
    today: date,
) -> SaleTotals:
    """Recalculate sale totals and stage states in the fixed order."""
    paid = sum((s.received for s in stages), ZERO)
    due = total_price - paid
    new_stages = tuple(_recompute_stage(s, today) for s in stages)
    return SaleTotals(
        paid=paid,
        due=due,
        status=next_sale_status(status, paid, total_price),
        stages=new_stages,
    )


def default_stage_plan(
    total_price: Decimal,
    booking: Decimal,
    registration: Decimal = ZERO,
    handover: Decimal = ZERO,
) -> tuple[tuple[StageName, Decimal], ...]:
    """
    Split a price into Booking / Installments / Registration / Handover.

    Installments receives whatever the other stages leave over.  Stages
    with a zero amount are omitted except Installments when positive.
    """
    installments = total_price - booking - registration - handover
    if installments < ZERO:
        raise ValidationError("Stage amounts exceed the total price", field="stages")
    plan = [(StageName.BOOKING, booking)]
    if installments > ZERO:
        plan.append((StageName.INSTALLMENTS, installments))
    if registration > ZERO:
        plan.append((StageName.REGISTRATION, registration))
    if handover > ZERO:
        plan.append((StageName.HANDOVER, handover))
    return tuple(plan)
