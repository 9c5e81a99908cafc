"""
Tests for receivable aging.

Covers:
- Days past due
- Bucket boundaries
- Report totals and ordering
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from estate_engines.aging import ReceivableItem, age_receivables, classify, days_past_due

AS_OF = date(2024, 6, 30)


def item(number, outstanding, due):
    return ReceivableItem(
        sale_id=uuid4(),
        sale_number=number,
        client_id=uuid4(),
        client_name="Client",
        outstanding=Decimal(outstanding),
        oldest_unpaid_due=due,
    )


class TestDaysPastDue:
    def test_not_yet_due(self):
        assert days_past_due(date(2024, 7, 1), AS_OF) == 0

    def test_no_due_date(self):
        assert days_past_due(None, AS_OF) == 0

    def test_past_due(self):
        assert days_past_due(date(2024, 6, 1), AS_OF) == 29


class TestClassify:
    @pytest.mark.parametrize(
        "days, bucket",
        [(0, "current"), (1, "1-30"), (30, "1-30"), (31, "31-60"), (90, "61-90"), (91, "90+"), (400, "90+")],
    )
    def test_boundaries(self, days, bucket):
        assert classify(days).name == bucket


class TestAgingReport:
    def test_totals_and_order(self):
        report = age_receivables(
            items=[
                item("SAL-2024-01-00001", "1000", date(2024, 6, 20)),
                item("SAL-2024-01-00002", "5000", date(2024, 1, 1)),
                item("SAL-2024-01-00003", "700", None),
                item("SAL-2024-01-00004", "0", date(2024, 1, 1)),
            ],
            as_of=AS_OF,
        )
        assert report.bucket_totals["1-30"] == Decimal("1000")
        assert report.bucket_totals["90+"] == Decimal("5000")
        assert report.bucket_totals["current"] == Decimal("700")
        assert report.total == Decimal("6700")
        assert [row.item.sale_number for row in report.rows] == [
            "SAL-2024-01-00002",
            "SAL-2024-01-00001",
            "SAL-2024-01-00003",
        ]
