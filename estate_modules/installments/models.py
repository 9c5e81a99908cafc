"""Installment schedule domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from estate_engines.installment_schedule import InstallmentFrequency, InstallmentStatus

__all__ = [
    "ClientStatement",
    "InstallmentFrequency",
    "InstallmentLine",
    "InstallmentStatus",
]


@dataclass(frozen=True)
class InstallmentLine:
    id: UUID
    sale_id: UUID
    client_id: UUID
    sequence: int
    due_date: date
    amount: Decimal
    paid_amount: Decimal
    status: InstallmentStatus
    paid_date: date | None

    @property
    def outstanding(self) -> Decimal:
        return self.amount - self.paid_amount


@dataclass(frozen=True)
class ClientStatement:
    client_id: UUID
    total_lines: int
    paid_lines: int
    overdue_lines: int
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    lines: tuple[InstallmentLine, ...]
