"""
Tests for ChequeService.

Covers:
- Registration sets the status from the due date and checks links
- Status sweep and "cheque due" reminders
- Clearing, bouncing and cancelling are final and role-checked
- Due / upcoming queries and stats
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from estate_kernel.domain.events import NotificationKind
from estate_kernel.exceptions import (
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from estate_modules.cheques.models import ChequeStatus, ChequeType, status_for_date
from estate_modules.cheques.workflows import CHEQUE_WORKFLOW


@pytest.fixture
def pdc(cheque_service, sales_actor, client, sale):
    return cheque_service.register_cheque(
        sales_actor, client.id, "CHQ-1001", "City Bank", 75000, date(2024, 2, 1),
        cheque_type=ChequeType.PDC, sale_id=sale.id,
    )


class TestDatedStatus:
    @pytest.mark.parametrize(
        "due, expected",
        [
            (date(2024, 1, 20), ChequeStatus.PENDING),
            (date(2024, 1, 15), ChequeStatus.DUE_TODAY),
            (date(2024, 1, 10), ChequeStatus.OVERDUE),
        ],
    )
    def test_status_for_date(self, due, expected):
        assert status_for_date(due, date(2024, 1, 15)) == expected

    def test_settled_states_are_terminal(self):
        for state in ("Cleared", "Bounced", "Cancelled"):
            assert CHEQUE_WORKFLOW.allowed_targets(state) == frozenset()


class TestRegister:
    def test_register_post_dated(self, pdc, sale):
        assert pdc.status == ChequeStatus.PENDING
        assert pdc.cheque_type == ChequeType.PDC
        assert pdc.issue_date == date(2024, 1, 15)
        assert pdc.sale_id == sale.id
        assert pdc.days_until_due(date(2024, 1, 15)) == 17

    def test_register_due_today(self, cheque_service, sales_actor, client):
        cheque = cheque_service.register_cheque(
            sales_actor, client.id, "CHQ-2", "City Bank", 1000, date(2024, 1, 15),
        )
        assert cheque.status == ChequeStatus.DUE_TODAY

    def test_required_fields(self, cheque_service, sales_actor, client):
        with pytest.raises(ValidationError):
            cheque_service.register_cheque(sales_actor, client.id, " ", "City Bank", 10, date(2024, 2, 1))
        with pytest.raises(ValidationError):
            cheque_service.register_cheque(sales_actor, client.id, "CHQ-3", "", 10, date(2024, 2, 1))
        with pytest.raises(ValidationError):
            cheque_service.register_cheque(sales_actor, client.id, "CHQ-3", "City Bank", 0, date(2024, 2, 1))

    def test_unknown_client(self, cheque_service, sales_actor):
        with pytest.raises(NotFoundError):
            cheque_service.register_cheque(sales_actor, uuid4(), "CHQ-4", "City Bank", 10, date(2024, 2, 1))

    def test_sale_of_another_client(self, cheque_service, sales_service, sales_actor, sale):
        other = sales_service.register_client(sales_actor, "Karim Ali", phone="01800000000")
        with pytest.raises(ValidationError) as exc:
            cheque_service.register_cheque(
                sales_actor, other.id, "CHQ-5", "City Bank", 10, date(2024, 2, 1), sale_id=sale.id,
            )
        assert exc.value.details["field"] == "sale_id"
        assert cheque_service.list_cheques(client_id=other.id) == []


class TestEdit:
    def test_redating_updates_status(self, cheque_service, sales_actor, pdc):
        moved = cheque_service.update_cheque(sales_actor, pdc.id, due_date=date(2024, 1, 15))
        assert moved.status == ChequeStatus.DUE_TODAY
        back = cheque_service.update_cheque(sales_actor, pdc.id, due_date=date(2024, 3, 1), amount="80000")
        assert back.status == ChequeStatus.PENDING
        assert back.amount == Decimal("80000")

    def test_unknown_field(self, cheque_service, sales_actor, pdc):
        with pytest.raises(ValidationError):
            cheque_service.update_cheque(sales_actor, pdc.id, status="Cleared")

    def test_settled_cheque_is_frozen(self, cheque_service, sales_actor, manager, pdc):
        cheque_service.mark_cleared(manager, pdc.id)
        with pytest.raises(InvalidStateTransitionError):
            cheque_service.update_cheque(sales_actor, pdc.id, amount=1)
        with pytest.raises(InvalidStateTransitionError):
            cheque_service.delete_cheque(sales_actor, pdc.id)

    def test_delete_open_cheque(self, cheque_service, sales_actor, pdc):
        cheque_service.delete_cheque(sales_actor, pdc.id)
        with pytest.raises(NotFoundError):
            cheque_service.get_cheque(pdc.id)
        assert cheque_service.cheque_stats().total_count == 0


class TestSettlement:
    def test_clear(self, cheque_service, manager, pdc):
        cleared = cheque_service.mark_cleared(manager, pdc.id, cleared_on=date(2024, 2, 2))
        assert cleared.status == ChequeStatus.CLEARED
        assert cleared.cleared_date == date(2024, 2, 2)

    def test_bounce_needs_reason(self, cheque_service, hof, pdc):
        with pytest.raises(ValidationError):
            cheque_service.mark_bounced(hof, pdc.id, "  ")
        bounced = cheque_service.mark_bounced(hof, pdc.id, "insufficient funds")
        assert bounced.status == ChequeStatus.BOUNCED
        assert bounced.bounce_reason == "insufficient funds"
        assert bounced.bounce_date == date(2024, 1, 15)

    def test_cancel(self, cheque_service, admin, pdc):
        cancelled = cheque_service.cancel_cheque(admin, pdc.id, "replaced by transfer")
        assert cancelled.status == ChequeStatus.CANCELLED
        assert cancelled.cancel_reason == "replaced by transfer"

    def test_sales_role_cannot_settle(self, cheque_service, sales_actor, pdc):
        with pytest.raises(ForbiddenError):
            cheque_service.mark_cleared(sales_actor, pdc.id)
        assert cheque_service.get_cheque(pdc.id).status == ChequeStatus.PENDING

    def test_settled_is_final(self, cheque_service, manager, pdc):
        cheque_service.mark_cleared(manager, pdc.id)
        with pytest.raises(InvalidStateTransitionError):
            cheque_service.mark_cleared(manager, pdc.id)
        with pytest.raises(InvalidStateTransitionError):
            cheque_service.mark_bounced(manager, pdc.id, "late return")
        with pytest.raises(InvalidStateTransitionError):
            cheque_service.cancel_cheque(manager, pdc.id, "mistake")


class TestSweeps:
    def test_due_then_overdue(self, cheque_service, pdc, deterministic_clock, notifier):
        deterministic_clock.set_date(date(2024, 1, 31))
        assert cheque_service.sweep_statuses() == []

        deterministic_clock.set_date(date(2024, 2, 1))
        changed = cheque_service.sweep_statuses()
        assert [c.status for c in changed] == [ChequeStatus.DUE_TODAY]

        events = cheque_service.due_reminders()
        assert len(events) == 1
        assert events[0].kind == NotificationKind.CHEQUE_DUE
        assert events[0].reference == "cheque CHQ-1001 due 2024-02-01"
        assert str(events[0].amount) == "75000.00"
        assert notifier.of_kind(NotificationKind.CHEQUE_DUE) == events

        deterministic_clock.set_date(date(2024, 2, 2))
        changed = cheque_service.sweep_statuses()
        assert [c.status for c in changed] == [ChequeStatus.OVERDUE]
        assert cheque_service.sweep_statuses() == []

    def test_reminder_marks_due_today(self, cheque_service, pdc, deterministic_clock):
        deterministic_clock.set_date(date(2024, 2, 1))
        cheque_service.due_reminders()
        assert cheque_service.get_cheque(pdc.id).status == ChequeStatus.DUE_TODAY

    def test_client_without_phone_is_skipped(
        self, cheque_service, sales_service, sales_actor, deterministic_clock, notifier,
    ):
        silent = sales_service.register_client(sales_actor, "No Phone")
        cheque_service.register_cheque(sales_actor, silent.id, "CHQ-9", "City Bank", 10, date(2024, 1, 20))
        deterministic_clock.set_date(date(2024, 1, 20))
        assert cheque_service.due_reminders() == []
        assert notifier.events == []

    def test_settled_cheques_are_left_alone(self, cheque_service, manager, pdc, deterministic_clock):
        cheque_service.mark_cleared(manager, pdc.id)
        deterministic_clock.set_date(date(2024, 3, 1))
        assert cheque_service.sweep_statuses() == []
        assert cheque_service.get_cheque(pdc.id).status == ChequeStatus.CLEARED


class TestQueries:
    @pytest.fixture
    def register(self, cheque_service, sales_actor, client):
        def _register(number, due, amount=1000):
            return cheque_service.register_cheque(
                sales_actor, client.id, number, "City Bank", amount, due,
            )
        return _register

    def test_due_and_upcoming(self, cheque_service, manager, register):
        overdue = register("C-1", date(2024, 1, 10))
        today = register("C-2", date(2024, 1, 15))
        soon = register("C-3", date(2024, 1, 20))
        register("C-4", date(2024, 2, 20))
        cleared = register("C-5", date(2024, 1, 12))
        cheque_service.mark_cleared(manager, cleared.id)

        assert [c.id for c in cheque_service.due_cheques()] == [overdue.id, today.id]
        assert [c.id for c in cheque_service.upcoming_cheques()] == [today.id, soon.id]
        assert len(cheque_service.upcoming_cheques(days=60)) == 3
        with pytest.raises(ValidationError):
            cheque_service.upcoming_cheques(days=-1)

    def test_list_filters(self, cheque_service, register, pdc, sale):
        register("C-1", date(2024, 1, 10))
        assert [c.id for c in cheque_service.list_cheques(sale_id=sale.id)] == [pdc.id]
        assert [c.id for c in cheque_service.list_cheques(cheque_type=ChequeType.PDC)] == [pdc.id]
        assert len(cheque_service.list_cheques(status=ChequeStatus.OVERDUE)) == 1
        assert len(cheque_service.list_cheques(due_from=date(2024, 1, 11))) == 1

    def test_stats(self, cheque_service, manager, hof, register):
        register("C-1", date(2024, 1, 10), amount=100)
        cleared = register("C-2", date(2024, 1, 20), amount=200)
        bounced = register("C-3", date(2024, 1, 25), amount=400)
        register("C-4", date(2024, 2, 1), amount=800)
        cheque_service.mark_cleared(manager, cleared.id)
        cheque_service.mark_bounced(hof, bounced.id, "signature mismatch")

        stats = cheque_service.cheque_stats()
        assert stats.total_count == 4
        assert stats.total_amount == Decimal("1500")
        assert stats.counts[ChequeStatus.OVERDUE] == 1
        assert stats.counts[ChequeStatus.PENDING] == 1
        assert stats.counts[ChequeStatus.DUE_TODAY] == 0
        assert stats.cleared_amount == Decimal("200")
        assert stats.pending_amount == Decimal("900")
        assert stats.amounts[ChequeStatus.BOUNCED] == Decimal("400")
