"""
Sales module domain models.

Stage and sale status enums are shared with ``estate_engines.stage_account``
so the recompute engine and the service speak the same closed variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from estate_engines.stage_account import SaleStatus, StageName, StageStatus

__all__ = [
    "Client",
    "Sale",
    "SaleStatus",
    "SalesStats",
    "Stage",
    "StageInput",
    "StageName",
    "StageStatus",
]


@dataclass(frozen=True)
class Client:
    id: UUID
    name: str
    phone: str | None
    email: str | None
    address: str | None


@dataclass(frozen=True)
class StageInput:
    """Planned stage supplied when a sale is created."""

    name: StageName
    planned_amount: Decimal
    expected_date: date | None = None


@dataclass(frozen=True)
class Stage:
    name: StageName
    planned_amount: Decimal
    received_amount: Decimal
    due_amount: Decimal
    status: StageStatus
    expected_date: date | None
    completed_date: date | None


@dataclass(frozen=True)
class Sale:
    id: UUID
    sale_number: str
    client_id: UUID
    plot_id: UUID
    total_price: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    status: SaleStatus
    sale_date: date
    stages: tuple[Stage, ...]

    def stage(self, name: StageName) -> Stage:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)


@dataclass(frozen=True)
class SalesStats:
    total_sales: int
    total_value: Decimal
    total_received: Decimal
    total_due: Decimal
    by_status: dict[SaleStatus, int]
    this_month_count: int
    this_month_value: Decimal
