"""
Module: estate_engines.aging
Responsibility:
    Classify outstanding sale balances into receivable aging buckets by the
    due date of each sale's oldest unpaid installment.

Architecture position:
    Engines -- pure.  The receivables selector gathers the inputs.

Invariants enforced:
    - Bucket totals sum to the report total.
    - A balance with no past-due installment is ``current``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from estate_engines.tracer import traced_engine

ZERO = Decimal("0")


@dataclass(frozen=True)
class AgeBucket:
    name: str
    min_days: int
    max_days: int | None

    def contains(self, days: int) -> bool:
        if days < self.min_days:
            return False
        return self.max_days is None or days <= self.max_days


RECEIVABLE_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("current", 0, 0),
    AgeBucket("1-30", 1, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("90+", 91, None),
)


@dataclass(frozen=True)
class ReceivableItem:
    sale_id: UUID
    sale_number: str
    client_id: UUID
    client_name: str
    outstanding: Decimal
    oldest_unpaid_due: date | None


@dataclass(frozen=True)
class AgedReceivable:
    item: ReceivableItem
    days_past_due: int
    bucket: str


@dataclass(frozen=True)
class AgingReport:
    as_of: date
    rows: tuple[AgedReceivable, ...]
    bucket_totals: dict[str, Decimal]

    @property
    def total(self) -> Decimal:
        return sum(self.bucket_totals.values(), ZERO)


def days_past_due(due: date | None, as_of: date) -> int:
    if due is None or due >= as_of:
        return 0
    return (as_of - due).days


def classify(days: int, buckets: Sequence[AgeBucket] = RECEIVABLE_BUCKETS) -> AgeBucket:
    for bucket in buckets:
        if bucket.contains(days):
            return bucket
    raise ValueError(f"No aging bucket for {days} days")


@traced_engine("aging.receivables", "1.0", fingerprint_fields=("as_of",))
def age_receivables(
    *,
    items: Sequence[ReceivableItem],
    as_of: date,
    buckets: Sequence[AgeBucket] = RECEIVABLE_BUCKETS,
) -> AgingReport:
    totals = {bucket.name: ZERO for bucket in buckets}
    rows = []
    for item in items:
        if item.outstanding <= ZERO:
            continue
        days = days_past_due(item.oldest_unpaid_due, as_of)
        bucket = classify(days, buckets)
        totals[bucket.name] += item.outstanding
        rows.append(AgedReceivable(item=item, days_past_due=days, bucket=bucket.name))
    rows.sort(key=lambda r: (-r.days_past_due, r.item.sale_number))
    return AgingReport(as_of=as_of, rows=tuple(rows), bucket_totals=totals)
