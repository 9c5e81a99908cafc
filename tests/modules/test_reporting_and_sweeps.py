"""Receivable aging over live sales and the daily sweep."""

from datetime import date
from decimal import Decimal

import pytest

from estate_engines.installment_schedule import InstallmentFrequency
from estate_kernel.domain.events import NotificationKind
from estate_modules.reporting import ReportingSelector
from estate_modules.sweeps import DailySweep


@pytest.fixture
def scheduled_sale(installment_service, sales_actor, sale):
    installment_service.generate_schedule(
        sales_actor, sale.id, 12, InstallmentFrequency.MONTHLY, date(2024, 2, 1),
    )
    return sale


@pytest.fixture
def second_sale(land_service, sales_service, admin, sales_actor, parcel):
    plot = land_service.create_plot(admin, parcel.id, "A-2", 5, price=400000)
    buyer = sales_service.register_client(sales_actor, "Nasrin Akter", phone="01800000000")
    return sales_service.create_sale(sales_actor, buyer.id, plot.id, 400000, booking_amount=40000)


class TestAging:
    def test_buckets(self, session, scheduled_sale, second_sale):
        report = ReportingSelector(session).aging_report(date(2024, 3, 15))
        by_number = {row.item.sale_number: row for row in report.rows}

        first = by_number[scheduled_sale.sale_number]
        assert first.days_past_due == 43
        assert first.bucket == "31-60"
        assert by_number[second_sale.sale_number].bucket == "current"

        assert report.bucket_totals["31-60"] == Decimal("1000000")
        assert report.bucket_totals["current"] == Decimal("400000")
        assert report.total == Decimal("1400000")
        assert report.rows[0].item.sale_number == scheduled_sale.sale_number

    def test_cancelled_sales_drop_out(
        self, session, cancellation_service, sales_actor, scheduled_sale, second_sale,
    ):
        cancellation_service.open(sales_actor, second_sale.id, "financing fell through")
        receivables = ReportingSelector(session).receivables()
        assert [item.sale_id for item in receivables] == [scheduled_sale.id]


class TestDailySweep:
    def test_reminders_before_due(self, ctx, scheduled_sale, deterministic_clock, notifier):
        deterministic_clock.set_date(date(2024, 1, 30))
        result = DailySweep(ctx).run()
        assert result.sales_refreshed == 1
        assert result.sales_failed == 0
        assert result.lines_changed == 0
        assert result.installment_reminders == 1
        assert result.refund_reminders == 0
        assert len(notifier.of_kind(NotificationKind.INSTALLMENT_DUE)) == 1

    def test_missed_lines(self, ctx, scheduled_sale, deterministic_clock, notifier, captured_logs):
        deterministic_clock.set_date(date(2024, 3, 5))
        result = DailySweep(ctx).run()
        assert result.lines_changed == 2
        assert result.installment_reminders == 0
        assert len(notifier.of_kind(NotificationKind.INSTALLMENT_MISSED)) == 1
        completed = [r for r in captured_logs() if r["message"] == "daily_sweep_completed"]
        assert completed[0]["operation"] == "daily_sweep"

    def test_cheques_fall_due(
        self, ctx, cheque_service, sales_actor, client, deterministic_clock, notifier,
    ):
        due = cheque_service.register_cheque(
            sales_actor, client.id, "CHQ-77", "City Bank", 5000, date(2024, 2, 1),
        )
        lapsed = cheque_service.register_cheque(
            sales_actor, client.id, "CHQ-78", "City Bank", 5000, date(2024, 1, 31),
        )
        deterministic_clock.set_date(date(2024, 2, 1))
        result = DailySweep(ctx).run()
        assert result.cheques_changed == 2
        assert result.cheque_reminders == 1
        assert [e.reference for e in notifier.of_kind(NotificationKind.CHEQUE_DUE)] == [
            "cheque CHQ-77 due 2024-02-01",
        ]
        assert cheque_service.get_cheque(due.id).status.value == "Due Today"
        assert cheque_service.get_cheque(lapsed.id).status.value == "Overdue"
