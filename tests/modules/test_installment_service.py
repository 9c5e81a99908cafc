"""
Tests for InstallmentService.

Covers:
- Schedule generation from the sale's Installments stage
- Payments land on one line and on the stage together
- Overpayment refusal
- Overdue / missed sweep with notifications, due reminders, client statement
"""

from datetime import date
from decimal import Decimal

import pytest

from estate_engines.installment_schedule import InstallmentFrequency, InstallmentStatus
from estate_kernel.domain.events import NotificationKind
from estate_kernel.exceptions import ConflictError, InsufficientFundsError, NotFoundError
from estate_modules.sales.models import StageName, StageStatus


@pytest.fixture
def schedule(installment_service, sales_actor, sale):
    return installment_service.generate_schedule(
        sales_actor, sale.id, 12, InstallmentFrequency.MONTHLY, date(2024, 2, 1),
    )


class TestGenerateSchedule:
    def test_defaults_to_stage_amount(self, schedule, sales_service, sale):
        assert len(schedule) == 12
        assert {line.amount for line in schedule} == {Decimal("75000")}
        assert schedule[0].due_date == date(2024, 2, 1)
        assert schedule[-1].due_date == date(2025, 1, 1)
        assert all(line.status == InstallmentStatus.PENDING for line in schedule)

        stage = sales_service.get_sale(sale.id).stage(StageName.INSTALLMENTS)
        assert stage.expected_date == date(2025, 1, 1)

    def test_only_once(self, installment_service, sales_actor, sale, schedule):
        with pytest.raises(ConflictError):
            installment_service.generate_schedule(
                sales_actor, sale.id, 6, InstallmentFrequency.MONTHLY, date(2024, 2, 1),
            )

    def test_explicit_total_with_remainder(self, installment_service, sales_actor, sale):
        lines = installment_service.generate_schedule(
            sales_actor, sale.id, 3, InstallmentFrequency.QUARTERLY, date(2024, 1, 31),
            total="100000",
        )
        assert [line.amount for line in lines] == [
            Decimal("33333.33"), Decimal("33333.33"), Decimal("33333.34"),
        ]
        assert [line.due_date for line in lines] == [
            date(2024, 1, 31), date(2024, 4, 30), date(2024, 7, 31),
        ]


class TestPayments:
    def test_payment_updates_line_and_stage(self, installment_service, sales_service, sales_actor, sale, schedule):
        line = installment_service.apply_payment(sales_actor, sale.id, 1, 75000)
        assert line.status == InstallmentStatus.PAID
        assert line.paid_date == date(2024, 1, 15)
        assert line.outstanding == 0

        stage = sales_service.get_sale(sale.id).stage(StageName.INSTALLMENTS)
        assert stage.received_amount == Decimal("75000")
        assert stage.status == StageStatus.PARTIAL
        assert installment_service.unpaid_count(sale.id) == 11

    def test_partial_payment(self, installment_service, sales_actor, sale, schedule):
        line = installment_service.apply_payment(sales_actor, sale.id, 2, "25000")
        assert line.status == InstallmentStatus.PARTIAL
        assert line.outstanding == Decimal("50000")

    def test_overpayment_refused(self, installment_service, sales_service, sales_actor, sale, schedule):
        with pytest.raises(InsufficientFundsError) as exc:
            installment_service.apply_payment(sales_actor, sale.id, 2, 80000)
        assert exc.value.available == Decimal("75000")
        assert sales_service.get_sale(sale.id).paid_amount == 0

    def test_unknown_line(self, installment_service, sales_actor, sale, schedule):
        with pytest.raises(NotFoundError):
            installment_service.apply_payment(sales_actor, sale.id, 13, 100)


class TestSweeps:
    def test_overdue_then_missed(self, installment_service, sale, schedule, deterministic_clock, notifier):
        deterministic_clock.set_date(date(2024, 2, 5))
        changed = installment_service.sweep_overdue()
        assert [(line.sequence, line.status) for line in changed] == [(1, InstallmentStatus.OVERDUE)]
        assert notifier.of_kind(NotificationKind.INSTALLMENT_MISSED) == []

        deterministic_clock.set_date(date(2024, 3, 5))
        changed = installment_service.sweep_overdue()
        assert [(line.sequence, line.status) for line in changed] == [
            (1, InstallmentStatus.MISSED),
            (2, InstallmentStatus.OVERDUE),
        ]
        missed = notifier.of_kind(NotificationKind.INSTALLMENT_MISSED)
        assert len(missed) == 1
        assert missed[0].phone == "01700000000"
        assert missed[0].amount == Decimal("75000")
        assert str(missed[0].amount) == "75000.00"

    def test_sweep_is_idempotent(self, installment_service, schedule, deterministic_clock):
        deterministic_clock.set_date(date(2024, 3, 5))
        installment_service.sweep_overdue()
        assert installment_service.sweep_overdue() == []

    def test_due_reminders(self, installment_service, schedule, deterministic_clock, notifier):
        deterministic_clock.set_date(date(2024, 1, 30))
        events = installment_service.due_reminders()
        assert len(events) == 1
        assert events[0].kind == NotificationKind.INSTALLMENT_DUE
        assert events[0].reference == "installment 1 due 2024-02-01"
        assert notifier.of_kind(NotificationKind.INSTALLMENT_DUE) == events
        assert str(events[0].amount) == "75000.00"

    def test_cancelled_sale_is_left_alone(
        self, installment_service, cancellation_service, sales_actor, sale, schedule,
        deterministic_clock, notifier,
    ):
        cancellation_service.open(sales_actor, sale.id, "client withdrew")

        deterministic_clock.set_date(date(2024, 1, 30))
        assert installment_service.due_reminders() == []

        deterministic_clock.set_date(date(2024, 3, 15))
        assert installment_service.sweep_overdue() == []
        assert notifier.of_kind(NotificationKind.INSTALLMENT_DUE) == []
        assert notifier.of_kind(NotificationKind.INSTALLMENT_MISSED) == []
        lines = installment_service.lines_for_sale(sale.id)
        assert {line.status for line in lines} == {InstallmentStatus.PENDING}


class TestStatement:
    def test_client_statement(self, installment_service, sales_actor, sale, client, schedule, deterministic_clock):
        installment_service.apply_payment(sales_actor, sale.id, 1, 75000)
        deterministic_clock.set_date(date(2024, 3, 5))
        installment_service.sweep_overdue()

        statement = installment_service.client_statement(client.id)
        assert statement.total_lines == 12
        assert statement.paid_lines == 1
        assert statement.overdue_lines == 1
        assert statement.total_due == Decimal("900000")
        assert statement.outstanding == Decimal("825000")
