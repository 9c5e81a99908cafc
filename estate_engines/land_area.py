"""
Module: estate_engines.land_area
Responsibility:
    Pure area bookkeeping for one land parcel.  Every plot creation, resize,
    sale, cancellation and deletion is expressed as one of four moves on an
    immutable AreaBalance.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  LandService loads the
    parcel row, applies a move here, and writes the result back under the
    parcel lock.

Invariants enforced:
    - total = sold + allocated + remaining, remaining >= 0, after every move.
    - sell/revert_sale keep remaining unchanged.

Failure modes:
    - InsufficientAreaError when a move would drive remaining, allocated or
      sold below zero.
    - ValidationError for non-positive area.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from estate_kernel.exceptions import InsufficientAreaError, ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class AvailabilityStatus(str, Enum):
    AVAILABLE = "Available"
    PARTIALLY_AVAILABLE = "Partially Available"
    ALMOST_FULL = "Almost Full"
    FULLY_UTILIZED = "Fully Utilized"


@dataclass(frozen=True)
class AreaBalance:
    parcel: str
    total: Decimal
    sold: Decimal = ZERO
    allocated: Decimal = ZERO

    @property
    def remaining(self) -> Decimal:
        return self.total - self.sold - self.allocated

    @property
    def used(self) -> Decimal:
        return self.sold + self.allocated

    @property
    def utilization_percent(self) -> Decimal:
        if self.total <= ZERO:
            return ZERO
        return (self.used / self.total * HUNDRED).quantize(Decimal("0.01"))

    @property
    def availability(self) -> AvailabilityStatus:
        pct = self.utilization_percent
        if pct >= 100:
            return AvailabilityStatus.FULLY_UTILIZED
        if pct >= 75:
            return AvailabilityStatus.ALMOST_FULL
        if pct >= 50:
            return AvailabilityStatus.PARTIALLY_AVAILABLE
        return AvailabilityStatus.AVAILABLE

    def is_consistent(self) -> bool:
        return (
            self.remaining >= ZERO
            and self.sold >= ZERO
            and self.allocated >= ZERO
            and self.total == self.sold + self.allocated + self.remaining
        )


def _positive(area: Decimal) -> Decimal:
    if area <= ZERO:
        raise ValidationError(f"Area must be positive, got {area}", field="area")
    return area


def allocate(balance: AreaBalance, area: Decimal) -> AreaBalance:
    """Reserve ``area`` out of the remaining area for a new or enlarged plot."""
    _positive(area)
    if area > balance.remaining:
        raise InsufficientAreaError(balance.parcel, area, balance.remaining)
    return replace(balance, allocated=balance.allocated + area)


def release(balance: AreaBalance, area: Decimal) -> AreaBalance:
    """Return allocated area to remaining (plot deleted or shrunk while unsold)."""
    _positive(area)
    if area > balance.allocated:
        raise InsufficientAreaError(balance.parcel, area, balance.allocated)
    return replace(balance, allocated=balance.allocated - area)


def sell(balance: AreaBalance, area: Decimal) -> AreaBalance:
    """Move allocated area to sold. Remaining is unchanged."""
    _positive(area)
    if area > balance.allocated:
        raise InsufficientAreaError(balance.parcel, area, balance.allocated)
    return replace(
        balance,
        allocated=balance.allocated - area,
        sold=balance.sold + area,
    )


def revert_sale(balance: AreaBalance, area: Decimal) -> AreaBalance:
    """Move sold area back to allocated (sale cancelled)."""
    _positive(area)
    if area > balance.sold:
        raise InsufficientAreaError(balance.parcel, area, balance.sold)
    return replace(
        balance,
        sold=balance.sold - area,
        allocated=balance.allocated + area,
    )


def resize_total(balance: AreaBalance, total: Decimal) -> AreaBalance:
    """Change the parcel's registered area; never below what plots already use."""
    _positive(total)
    if total < balance.used:
        raise InsufficientAreaError(balance.parcel, balance.used, total)
    return replace(balance, total=total)


def adjust_allocation(balance: AreaBalance, old_area: Decimal, new_area: Decimal) -> AreaBalance:
    """Resize an unsold plot by allocating or releasing the difference."""
    _positive(new_area)
    delta = new_area - old_area
    if delta > ZERO:
        return allocate(balance, delta)
    if delta < ZERO:
        return release(balance, -delta)
    return balance
