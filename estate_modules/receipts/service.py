"""
ReceiptService -- client payments through two-level approval.

A receipt is drafted against a sale stage (optionally one installment
line), submitted, and approved by an Account Manager then the Head of
Finance.  Final approval posts Dr Cash-or-Bank / Cr Accounts Receivable,
applies the amount to the stage (and line) and queues a "payment
confirmed" notification, all in the approving unit of work.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from estate_engines.ledger_pairs import receipt_posting
from estate_kernel.db.types import round_money, to_decimal
from estate_kernel.domain.approval import Actor, ApprovalHistoryEntry, Role
from estate_kernel.domain.events import NotificationEvent, NotificationKind
from estate_kernel.domain.identifiers import DocumentKind
from estate_kernel.domain.ledger import PaymentMethod, require_instrument
from estate_kernel.exceptions import (
    InsufficientFundsError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from estate_kernel.logging_config import get_logger
from estate_kernel.services.approval_service import ApprovalService
from estate_kernel.services.ledger_service import LedgerService
from estate_kernel.services.unit_of_work import UnitOfWork
from estate_modules.base import ModuleService
from estate_modules.installments.orm import InstallmentLineModel
from estate_modules.installments.service import InstallmentService
from estate_modules.receipts.models import Receipt
from estate_modules.receipts.orm import ReceiptModel
from estate_modules.sales.models import SaleStatus, StageName
from estate_modules.sales.orm import ClientModel, SaleModel
from estate_modules.sales.service import SalesService

logger = get_logger("modules.receipts.service")

RECEIPT_LOCK = "receipt"
ZERO = Decimal("0")

_EDITABLE_FIELDS = frozenset({
    "amount",
    "payment_method",
    "bank_name",
    "cheque_number",
    "cheque_date",
    "receipt_date",
    "stage_name",
    "installment_sequence",
    "remarks",
})


class ReceiptService(ModuleService):
    @property
    def _approvals(self) -> ApprovalService:
        return ApprovalService(self._session, self._clock)

    def _lock(self, uow: UnitOfWork, receipt_id: UUID) -> ReceiptModel:
        uow.lock(RECEIPT_LOCK, receipt_id)
        return self._get_for_update(ReceiptModel, receipt_id, "Receipt")

    def _validate(self, receipt: ReceiptModel, sale: SaleModel) -> None:
        if receipt.amount <= ZERO:
            raise ValidationError("Receipt amount must be positive", field="amount")
        require_instrument(
            PaymentMethod(receipt.payment_method), receipt.bank_name, receipt.cheque_number,
        )
        if sale.status == SaleStatus.CANCELLED.value:
            raise InvalidStateTransitionError(
                "Sale", sale.status, "receipt", "cancelled sales accept no receipts",
            )
        stage = StageName(receipt.stage_name)
        if sale.stage(stage) is None:
            raise ValidationError(
                f"Sale {sale.sale_number} has no {stage.value} stage", field="stage_name",
            )
        if receipt.installment_sequence is None:
            return
        if stage != StageName.INSTALLMENTS:
            raise ValidationError(
                "Only Installments receipts can name an installment", field="installment_sequence",
            )
        line = self._session.scalar(
            select(InstallmentLineModel).where(
                InstallmentLineModel.sale_id == sale.id,
                InstallmentLineModel.sequence == receipt.installment_sequence,
            )
        )
        if line is None:
            raise NotFoundError("InstallmentLine", f"{sale.sale_number}#{receipt.installment_sequence}")
        if receipt.amount > line.outstanding:
            raise InsufficientFundsError(
                f"{sale.sale_number}#{line.sequence}", receipt.amount, line.outstanding,
            )

    # =========================================================================
    # Drafting
    # =========================================================================

    def create_receipt(
        self,
        actor: Actor,
        sale_id: UUID,
        amount: Decimal | int | str,
        payment_method: PaymentMethod,
        stage_name: StageName = StageName.BOOKING,
        installment_sequence: int | None = None,
        bank_name: str | None = None,
        cheque_number: str | None = None,
        cheque_date: date | None = None,
        receipt_date: date | None = None,
        remarks: str | None = None,
    ) -> Receipt:
        value = to_decimal(amount, "amount")
        with self._uow("create_receipt", actor) as uow:
            sale = self._get(SaleModel, sale_id, "Sale")
            receipt = ReceiptModel(
                sale_id=sale.id,
                client_id=sale.client_id,
                stage_name=stage_name.value,
                installment_sequence=installment_sequence,
                amount=value,
                payment_method=payment_method.value,
                bank_name=bank_name,
                cheque_number=cheque_number,
                cheque_date=cheque_date,
                receipt_date=receipt_date or self._clock.today(),
                remarks=remarks,
                created_by_id=actor.actor_id,
            )
            self._validate(receipt, sale)
            receipt.document_number = self._ctx.sequences.next_document_number(
                DocumentKind.RECEIPT, self._clock.today(),
            )
            self._session.add(receipt)
            self._session.flush()
            self._audit(uow, actor, "receipt_created", "Receipt", receipt.id,
                        after={"receipt_number": receipt.document_number, "amount": str(value)})
            logger.info(
                "receipt_created",
                extra={
                    "receipt_number": receipt.document_number,
                    "sale_number": sale.sale_number,
                    "amount": str(value),
                    "payment_method": payment_method.value,
                },
            )
            return receipt.to_dto()

    def update_receipt(self, actor: Actor, receipt_id: UUID, **changes: Any) -> Receipt:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Receipt fields cannot be edited: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        with self._uow("update_receipt", actor) as uow:
            receipt = self._lock(uow, receipt_id)
            ApprovalService.ensure_editable(receipt)
            before = {key: str(getattr(receipt, key)) for key in changes}
            for key, value in changes.items():
                if key == "amount":
                    value = to_decimal(value, "amount")
                elif key in ("payment_method", "stage_name") and value is not None:
                    value = value.value
                setattr(receipt, key, value)
            receipt.updated_by_id = actor.actor_id
            self._validate(receipt, self._get(SaleModel, receipt.sale_id, "Sale"))
            self._session.flush()
            self._audit(uow, actor, "receipt_updated", "Receipt", receipt.id,
                        before=before,
                        after={key: str(getattr(receipt, key)) for key in changes})
            return receipt.to_dto()

    def delete_receipt(self, actor: Actor, receipt_id: UUID) -> None:
        with self._uow("delete_receipt", actor) as uow:
            receipt = self._lock(uow, receipt_id)
            ApprovalService.ensure_deletable(receipt)
            receipt.is_deleted = True
            receipt.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "receipt_deleted", "Receipt", receipt.id)
            logger.info("receipt_deleted", extra={"receipt_number": receipt.document_number})

    # =========================================================================
    # Approval
    # =========================================================================

    def _post_approved(self, uow: UnitOfWork, receipt: ReceiptModel, actor: Actor) -> None:
        sales = SalesService(self._ctx)
        sale = sales.lock_sale(uow, receipt.sale_id)
        LedgerService(self._session, self._clock).post(
            receipt_posting(
                receipt_id=receipt.id,
                receipt_number=receipt.document_number,
                client_id=receipt.client_id,
                amount=receipt.amount,
                method=PaymentMethod(receipt.payment_method),
                transaction_date=receipt.receipt_date,
            ),
            actor.actor_id,
        )
        if receipt.installment_sequence is not None:
            InstallmentService(self._ctx).apply_installment_payment(
                sale, receipt.installment_sequence, receipt.amount, actor,
                paid_on=receipt.receipt_date,
            )
        else:
            sales.apply_stage_payment(sale, StageName(receipt.stage_name), receipt.amount, actor)

        client = self._session.get(ClientModel, receipt.client_id)
        uow.notify(
            NotificationEvent(
                kind=NotificationKind.PAYMENT_CONFIRMED,
                phone=client.phone,
                name=client.name,
                amount=round_money(receipt.amount),
                reference=receipt.document_number,
            )
        )

    def submit_receipt(self, actor: Actor, receipt_id: UUID) -> Receipt:
        with self._uow("submit_receipt", actor) as uow:
            receipt = self._lock(uow, receipt_id)
            self._approvals.submit(receipt, actor)
            self._audit(uow, actor, "receipt_submitted", "Receipt", receipt.id,
                        after={"approval_status": receipt.approval_status})
            return receipt.to_dto()

    def approve_receipt(self, actor: Actor, receipt_id: UUID, remarks: str | None = None) -> Receipt:
        with self._uow("approve_receipt", actor) as uow:
            receipt = self._lock(uow, receipt_id)
            before = receipt.approval_status
            self._approvals.approve(
                receipt, actor,
                on_approved=lambda doc: self._post_approved(uow, doc, actor),
                remarks=remarks,
            )
            self._audit(uow, actor, "receipt_approved", "Receipt", receipt.id,
                        before={"approval_status": before},
                        after={"approval_status": receipt.approval_status})
            return receipt.to_dto()

    def reject_receipt(self, actor: Actor, receipt_id: UUID, remarks: str | None) -> Receipt:
        with self._uow("reject_receipt", actor) as uow:
            receipt = self._lock(uow, receipt_id)
            before = receipt.approval_status
            self._approvals.reject(receipt, actor, remarks)
            self._audit(uow, actor, "receipt_rejected", "Receipt", receipt.id,
                        before={"approval_status": before},
                        after={"approval_status": receipt.approval_status, "remarks": remarks})
            return receipt.to_dto()

    # =========================================================================
    # Reads
    # =========================================================================

    def get_receipt(self, receipt_id: UUID) -> Receipt:
        return self._get(ReceiptModel, receipt_id, "Receipt").to_dto()

    def receipts_for_sale(self, sale_id: UUID) -> list[Receipt]:
        rows = self._session.scalars(
            select(ReceiptModel)
            .where(ReceiptModel.sale_id == sale_id, ReceiptModel.is_deleted.is_(False))
            .order_by(ReceiptModel.document_number)
        )
        return [row.to_dto() for row in rows]

    def approval_queue(self, role: Role) -> list[Receipt]:
        return [row.to_dto() for row in self._approvals.approval_queue(ReceiptModel, role)]

    def history(self, receipt_id: UUID) -> list[ApprovalHistoryEntry]:
        return self._approvals.history(self._get(ReceiptModel, receipt_id, "Receipt"))
