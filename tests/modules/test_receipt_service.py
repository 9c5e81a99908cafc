"""
Tests for ReceiptService.

Covers:
- Draft validation (amount, instruments, stage, installment line)
- Two-level approval posts once, pays the stage or line and notifies
- Role checks leave the receipt untouched
- Editing rules across the approval lifecycle
- Approval queues and history
"""

from datetime import date
from decimal import Decimal

import pytest

from conftest import approve_fully
from estate_engines.installment_schedule import InstallmentFrequency, InstallmentStatus
from estate_kernel.domain.approval import ApprovalAction, ApprovalStatus, Role
from estate_kernel.domain.events import NotificationKind
from estate_kernel.domain.ledger import PaymentMethod
from estate_kernel.exceptions import (
    ForbiddenError,
    ImmutabilityViolationError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    MissingInstrumentError,
    ValidationError,
)
from estate_kernel.selectors.ledger_selector import LedgerSelector
from estate_kernel.services.approval_service import ApprovalService
from estate_modules.receipts.orm import ReceiptModel
from estate_modules.sales.models import StageName, StageStatus


@pytest.fixture
def draft(receipt_service, sales_actor, sale):
    return receipt_service.create_receipt(sales_actor, sale.id, 100000, PaymentMethod.CASH)


@pytest.fixture
def submitted(receipt_service, sales_actor, draft):
    return receipt_service.submit_receipt(sales_actor, draft.id)


class TestDrafting:
    def test_create(self, draft, sale):
        assert draft.receipt_number == "RCP-2024-01-00001"
        assert draft.approval_status == ApprovalStatus.DRAFT
        assert draft.stage_name == StageName.BOOKING
        assert draft.receipt_date == date(2024, 1, 15)
        assert not draft.posted_to_ledger

    def test_cheque_needs_instrument(self, receipt_service, sales_actor, sale):
        with pytest.raises(MissingInstrumentError) as exc:
            receipt_service.create_receipt(
                sales_actor, sale.id, 5000, PaymentMethod.CHEQUE, bank_name="City Bank",
            )
        assert exc.value.code == "MISSING_INSTRUMENT"

    def test_cheque_with_instrument(self, receipt_service, sales_actor, sale):
        receipt = receipt_service.create_receipt(
            sales_actor, sale.id, 5000, PaymentMethod.PDC,
            bank_name="City Bank", cheque_number="CHQ-1", cheque_date=date(2024, 2, 1),
        )
        assert receipt.payment_method == PaymentMethod.PDC

    def test_non_positive_amount(self, receipt_service, sales_actor, sale):
        with pytest.raises(ValidationError):
            receipt_service.create_receipt(sales_actor, sale.id, 0, PaymentMethod.CASH)

    def test_unknown_stage(self, receipt_service, sales_actor, sale):
        with pytest.raises(ValidationError):
            receipt_service.create_receipt(
                sales_actor, sale.id, 10, PaymentMethod.CASH, stage_name=StageName.HANDOVER,
            )

    def test_installment_overpayment_refused_at_draft(
        self, receipt_service, installment_service, sales_actor, sale,
    ):
        installment_service.generate_schedule(
            sales_actor, sale.id, 12, InstallmentFrequency.MONTHLY, date(2024, 2, 1),
        )
        with pytest.raises(InsufficientFundsError):
            receipt_service.create_receipt(
                sales_actor, sale.id, 75001, PaymentMethod.CASH,
                stage_name=StageName.INSTALLMENTS, installment_sequence=1,
            )

    def test_edit_and_delete_draft(self, receipt_service, sales_actor, draft):
        edited = receipt_service.update_receipt(sales_actor, draft.id, amount="90000", remarks="corrected")
        assert edited.amount == Decimal("90000")
        receipt_service.delete_receipt(sales_actor, draft.id)
        assert receipt_service.receipts_for_sale(draft.sale_id) == []

    def test_edit_unknown_field(self, receipt_service, sales_actor, draft):
        with pytest.raises(ValidationError):
            receipt_service.update_receipt(sales_actor, draft.id, sale_id=None)


class TestApproval:
    def test_two_level_approval_posts_and_pays(
        self, receipt_service, sales_service, session, manager, hof, submitted, notifier,
    ):
        first = receipt_service.approve_receipt(manager, submitted.id)
        assert first.approval_status == ApprovalStatus.PENDING_LEVEL2
        assert not first.posted_to_ledger
        assert notifier.events == []

        approved = receipt_service.approve_receipt(hof, submitted.id, remarks="ok")
        assert approved.approval_status == ApprovalStatus.APPROVED
        assert approved.posted_to_ledger

        entries = LedgerSelector(session).entries_for_reference(submitted.id)
        assert [(e.account_name, e.debit, e.credit) for e in entries] == [
            ("Cash", Decimal("100000"), Decimal("0")),
            ("Accounts Receivable - Clients", Decimal("0"), Decimal("100000")),
        ]

        sale = sales_service.get_sale(submitted.sale_id)
        assert sale.stage(StageName.BOOKING).status == StageStatus.COMPLETED
        assert sale.paid_amount == Decimal("100000")

        confirmed = notifier.of_kind(NotificationKind.PAYMENT_CONFIRMED)
        assert [(e.reference, e.amount) for e in confirmed] == [("RCP-2024-01-00001", Decimal("100000"))]
        assert str(confirmed[0].amount) == "100000.00"

    def test_bank_transfer_posts_to_bank(self, receipt_service, sales_actor, session, manager, hof, sale):
        receipt = receipt_service.create_receipt(sales_actor, sale.id, 2500, PaymentMethod.BANK_TRANSFER)
        receipt_service.submit_receipt(sales_actor, receipt.id)
        approve_fully(receipt_service.approve_receipt, receipt.id, manager, hof)
        assert LedgerSelector(session).account_balance("Bank") == Decimal("2500")

    def test_installment_receipt_pays_line(
        self, receipt_service, installment_service, sales_actor, manager, hof, sale,
    ):
        installment_service.generate_schedule(
            sales_actor, sale.id, 12, InstallmentFrequency.MONTHLY, date(2024, 2, 1),
        )
        receipt = receipt_service.create_receipt(
            sales_actor, sale.id, 75000, PaymentMethod.CASH,
            stage_name=StageName.INSTALLMENTS, installment_sequence=1,
        )
        receipt_service.submit_receipt(sales_actor, receipt.id)
        approve_fully(receipt_service.approve_receipt, receipt.id, manager, hof)

        line = installment_service.lines_for_sale(sale.id)[0]
        assert line.status == InstallmentStatus.PAID

    def test_wrong_roles(self, receipt_service, sales_actor, hof, manager, submitted):
        with pytest.raises(ForbiddenError):
            receipt_service.approve_receipt(hof, submitted.id)
        with pytest.raises(ForbiddenError):
            receipt_service.approve_receipt(sales_actor, submitted.id)
        receipt_service.approve_receipt(manager, submitted.id)
        with pytest.raises(ForbiddenError):
            receipt_service.approve_receipt(manager, submitted.id)
        assert receipt_service.get_receipt(submitted.id).approval_status == ApprovalStatus.PENDING_LEVEL2

    def test_approve_draft(self, receipt_service, admin, draft):
        with pytest.raises(InvalidStateTransitionError):
            receipt_service.approve_receipt(admin, draft.id)

    def test_reject_requires_remarks_then_resubmit(self, receipt_service, sales_actor, manager, submitted):
        with pytest.raises(ValidationError):
            receipt_service.reject_receipt(manager, submitted.id, "")
        rejected = receipt_service.reject_receipt(manager, submitted.id, "wrong amount")
        assert rejected.approval_status == ApprovalStatus.REJECTED

        receipt_service.update_receipt(sales_actor, submitted.id, amount=95000)
        again = receipt_service.submit_receipt(sales_actor, submitted.id)
        assert again.approval_status == ApprovalStatus.PENDING_LEVEL1

        actions = [entry.action for entry in receipt_service.history(submitted.id)]
        assert actions == [ApprovalAction.SUBMIT, ApprovalAction.REJECT, ApprovalAction.SUBMIT]

    def test_pending_receipt_cannot_be_edited(self, receipt_service, sales_actor, submitted):
        with pytest.raises(InvalidStateTransitionError):
            receipt_service.update_receipt(sales_actor, submitted.id, amount=1)


class TestPostingRetry:
    def test_second_posting_trigger_is_skipped(
        self, receipt_service, sales_service, session, deterministic_clock, manager, hof,
        submitted, captured_logs,
    ):
        approve_fully(receipt_service.approve_receipt, submitted.id, manager, hof)
        paid_before = sales_service.get_sale(submitted.sale_id).paid_amount

        calls = []
        model = session.get(ReceiptModel, submitted.id)
        ran = ApprovalService(session, deterministic_clock).post_once(model, calls.append)

        assert ran is False
        assert calls == []
        assert len(LedgerSelector(session).entries_for_reference(submitted.id)) == 2
        assert sales_service.get_sale(submitted.sale_id).paid_amount == paid_before
        assert any(r["message"] == "approval_posting_skipped" for r in captured_logs())


class TestAfterApproval:
    @pytest.fixture
    def approved(self, receipt_service, manager, hof, submitted):
        return approve_fully(receipt_service.approve_receipt, submitted.id, manager, hof)

    def test_service_refuses_edit_and_delete(self, receipt_service, sales_actor, approved):
        with pytest.raises(InvalidStateTransitionError):
            receipt_service.update_receipt(sales_actor, approved.id, amount=1)
        with pytest.raises(InvalidStateTransitionError):
            receipt_service.delete_receipt(sales_actor, approved.id)

    def test_orm_refuses_amount_change(self, session, approved):
        row = session.get(ReceiptModel, approved.id)
        row.amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_no_further_decisions(self, receipt_service, admin, approved):
        with pytest.raises(InvalidStateTransitionError):
            receipt_service.approve_receipt(admin, approved.id)

    def test_receipt_for_cancelled_sale(
        self, receipt_service, cancellation_service, sales_actor, approved,
    ):
        cancellation_service.open(sales_actor, approved.sale_id, "client relocated")
        with pytest.raises(InvalidStateTransitionError):
            receipt_service.create_receipt(sales_actor, approved.sale_id, 10, PaymentMethod.CASH)


class TestQueues:
    def test_queues_follow_levels(self, receipt_service, manager, hof, admin, submitted, draft):
        assert [r.id for r in receipt_service.approval_queue(Role.ACCOUNT_MANAGER)] == [submitted.id]
        assert receipt_service.approval_queue(Role.HOF) == []
        receipt_service.approve_receipt(manager, submitted.id)
        assert [r.id for r in receipt_service.approval_queue(Role.HOF)] == [submitted.id]
        assert [r.id for r in receipt_service.approval_queue(Role.ADMIN)] == [submitted.id]
        assert receipt_service.approval_queue(Role.SALES) == []
