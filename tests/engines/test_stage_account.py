"""
Tests for the sale stage recompute.

Covers:
- Stage status from received vs planned and expected date
- Sale totals and status transitions (including OnHold and Cancelled)
- Default stage plan
"""

from datetime import date
from decimal import Decimal

import pytest

from estate_engines.stage_account import (
    SaleStatus,
    StageName,
    StageState,
    StageStatus,
    default_stage_plan,
    next_sale_status,
    recompute_sale,
    stage_status,
)
from estate_kernel.exceptions import ValidationError

TODAY = date(2024, 3, 1)


def stages(booking_received="0", installments_received="0", expected=None):
    return (
        StageState(StageName.BOOKING, Decimal("100000"), Decimal(booking_received)),
        StageState(
            StageName.INSTALLMENTS,
            Decimal("900000"),
            Decimal(installments_received),
            expected_date=expected,
        ),
    )


class TestStageStatus:
    def test_pending_without_payment(self):
        stage = StageState(StageName.BOOKING, Decimal("100"))
        assert stage_status(stage, TODAY) == StageStatus.PENDING

    def test_partial(self):
        stage = StageState(StageName.BOOKING, Decimal("100"), Decimal("40"))
        assert stage_status(stage, TODAY) == StageStatus.PARTIAL

    def test_overdue_after_expected_date(self):
        stage = StageState(StageName.BOOKING, Decimal("100"), expected_date=date(2024, 2, 1))
        assert stage_status(stage, TODAY) == StageStatus.OVERDUE

    def test_overpayment_completes(self):
        stage = StageState(StageName.BOOKING, Decimal("100"), Decimal("120"))
        assert stage_status(stage, TODAY) == StageStatus.COMPLETED


class TestRecomputeSale:
    def test_booking_paid(self):
        totals = recompute_sale(
            total_price=Decimal("1000000"),
            status=SaleStatus.ACTIVE,
            stages=stages(booking_received="100000"),
            today=TODAY,
        )
        assert totals.paid == Decimal("100000")
        assert totals.due == Decimal("900000")
        assert totals.status == SaleStatus.ACTIVE
        assert totals.stages[0].status == StageStatus.COMPLETED
        assert totals.stages[0].completed_date == TODAY
        assert totals.stages[1].status == StageStatus.PENDING

    def test_fully_paid_completes(self):
        totals = recompute_sale(
            total_price=Decimal("1000000"),
            status=SaleStatus.ACTIVE,
            stages=stages("100000", "900000"),
            today=TODAY,
        )
        assert totals.status == SaleStatus.COMPLETED
        assert totals.due == Decimal("0")

    def test_recompute_is_idempotent(self):
        first = recompute_sale(
            total_price=Decimal("1000000"),
            status=SaleStatus.ACTIVE,
            stages=stages("100000", "5000", expected=date(2024, 1, 1)),
            today=TODAY,
        )
        second = recompute_sale(
            total_price=Decimal("1000000"),
            status=first.status,
            stages=first.stages,
            today=TODAY,
        )
        assert second == first


class TestNextSaleStatus:
    def test_cancelled_is_sticky(self):
        assert next_sale_status(SaleStatus.CANCELLED, Decimal("10"), Decimal("10")) == SaleStatus.CANCELLED

    def test_on_hold_completes_when_paid(self):
        assert next_sale_status(SaleStatus.ON_HOLD, Decimal("10"), Decimal("10")) == SaleStatus.COMPLETED

    def test_on_hold_stays_on_hold(self):
        assert next_sale_status(SaleStatus.ON_HOLD, Decimal("5"), Decimal("10")) == SaleStatus.ON_HOLD

    def test_completed_reopens_when_short(self):
        assert next_sale_status(SaleStatus.COMPLETED, Decimal("5"), Decimal("10")) == SaleStatus.ACTIVE


class TestDefaultStagePlan:
    def test_installments_take_the_rest(self):
        plan = default_stage_plan(Decimal("1000000"), Decimal("100000"), registration=Decimal("50000"))
        assert plan == (
            (StageName.BOOKING, Decimal("100000")),
            (StageName.INSTALLMENTS, Decimal("850000")),
            (StageName.REGISTRATION, Decimal("50000")),
        )

    def test_booking_only(self):
        plan = default_stage_plan(Decimal("500"), Decimal("500"))
        assert plan == ((StageName.BOOKING, Decimal("500")),)

    def test_overcommitted_plan(self):
        with pytest.raises(ValidationError):
            default_stage_plan(Decimal("100"), Decimal("80"), handover=Decimal("30"))
