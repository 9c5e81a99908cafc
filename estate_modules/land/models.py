"""
Land module domain models: parcels (RS numbers) and plots.

Frozen DTOs returned by LandService; ORM rows live in ``orm.py``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from estate_engines.land_area import AvailabilityStatus


class PlotStatus(str, Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    SOLD = "Sold"
    BLOCKED = "Blocked"


class AreaUnit(str, Enum):
    ACRE = "Acre"
    KATHA = "Katha"
    SQ_FT = "Sq Ft"
    DECIMAL = "Decimal"
    BIGHA = "Bigha"


@dataclass(frozen=True)
class LandParcel:
    id: UUID
    parcel_code: str
    project_name: str
    location: str | None
    unit: AreaUnit
    total_area: Decimal
    sold_area: Decimal
    allocated_area: Decimal
    remaining_area: Decimal
    utilization_percent: Decimal
    availability: AvailabilityStatus
    is_active: bool


@dataclass(frozen=True)
class Plot:
    id: UUID
    parcel_id: UUID
    plot_number: str
    area: Decimal
    status: PlotStatus
    price: Decimal | None
    client_id: UUID | None
    reservation_date: date | None
    sale_date: date | None


@dataclass(frozen=True)
class ParcelSummary:
    parcel: LandParcel
    plot_counts: dict[PlotStatus, int]
