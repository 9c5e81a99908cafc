"""
CancellationService -- sale cancellation, settlement and refund schedule.

Lifecycle::

    open ──► Pending ──approve──► Approved ──pay lines──► PartialRefund ──► Refunded
                │
                ├──reject──► Rejected   (sale back to Active)
                └──withdraw──► removed  (sale back to Active)

Opening snapshots the sale's paid amount and marks the sale Cancelled.
Approval (Head of Finance or Admin) returns the plot to Available and its
area from sold to allocated under the parcel lock.  Refund lines are
generated once from the approved terms; each line is an approvable
document whose final approval accrues the refund, and whose payment posts
the cash or bank movement and recomputes the cancellation status.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy import select

from estate_engines.installment_schedule import (
    InstallmentFrequency,
    generate_schedule,
)
from estate_engines.ledger_pairs import refund_accrual_posting, refund_payment_posting
from estate_engines.settlement import (
    CancellationStatus,
    Reconciliation,
    SettlementTerms,
    compute_settlement,
    reconcile,
    refund_progress,
)
from estate_kernel.db.types import round_money, to_decimal
from estate_kernel.domain.approval import (
    LEVEL_ROLES,
    Actor,
    ApprovalHistoryEntry,
    ApprovalStatus,
    Role,
)
from estate_kernel.domain.events import NotificationEvent, NotificationKind
from estate_kernel.domain.identifiers import DocumentKind
from estate_kernel.domain.ledger import PaymentMethod, require_instrument
from estate_kernel.exceptions import (
    AlreadyCancelledError,
    ConflictError,
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from estate_kernel.logging_config import get_logger
from estate_kernel.services.approval_service import ApprovalService
from estate_kernel.services.ledger_service import LedgerService
from estate_kernel.services.unit_of_work import UnitOfWork
from estate_modules.base import SYSTEM_ACTOR, ModuleService
from estate_modules.cancellations.models import (
    Cancellation,
    CancellationStats,
    RefundLine,
    RefundPaymentStatus,
)
from estate_modules.cancellations.orm import CancellationModel, RefundLineModel
from estate_modules.cancellations.workflows import (
    CANCELLATION_WORKFLOW,
    REFUND_PAYMENT_WORKFLOW,
)
from estate_modules.land.models import PlotStatus
from estate_modules.land.orm import PlotModel
from estate_modules.land.service import LandService
from estate_modules.sales.models import SaleStatus
from estate_modules.sales.orm import ClientModel
from estate_modules.sales.service import SalesService

logger = get_logger("modules.cancellations.service")

CANCELLATION_LOCK = "cancellation"
REFUND_LOCK = "refund_line"
ZERO = Decimal("0")

# Settlement decisions are one-level: the senior approvers only.
DECIDING_ROLES = LEVEL_ROLES[2]
PAYING_ROLES = LEVEL_ROLES[1] | LEVEL_ROLES[2]


def frequency_for_months(months: int) -> InstallmentFrequency:
    for frequency in InstallmentFrequency:
        if frequency.months == months:
            return frequency
    raise ValidationError(
        f"No refund frequency spans {months} months", field="refund_frequency_months",
    )


class CancellationService(ModuleService):
    @property
    def _approvals(self) -> ApprovalService:
        return ApprovalService(self._session, self._clock)

    def _lock(self, uow: UnitOfWork, cancellation_id: UUID) -> CancellationModel:
        uow.lock(CANCELLATION_LOCK, cancellation_id)
        return self._get_for_update(CancellationModel, cancellation_id, "Cancellation")

    def _lock_line(self, uow: UnitOfWork, refund_id: UUID) -> RefundLineModel:
        uow.lock(REFUND_LOCK, refund_id)
        return self._get_for_update(RefundLineModel, refund_id, "RefundLine")

    @staticmethod
    def _require_role(actor: Actor, roles: frozenset[Role], action: str, state: str) -> None:
        if actor.role not in roles:
            raise ForbiddenError(actor.role.value, action, state)

    def _move(self, cancellation: CancellationModel, target: CancellationStatus) -> None:
        if cancellation.status == target.value:
            return
        CANCELLATION_WORKFLOW.require(cancellation.status, target)
        logger.info(
            "cancellation_status_changed",
            extra={
                "cancellation_id": str(cancellation.id),
                "from_status": cancellation.status,
                "to_status": target.value,
            },
        )
        cancellation.status = target.value

    @staticmethod
    def _apply_terms(cancellation: CancellationModel, terms: SettlementTerms) -> None:
        cancellation.total_paid = terms.total_paid
        cancellation.office_charge_percent = terms.office_charge_percent
        cancellation.office_charge_amount = terms.office_charge_amount
        cancellation.other_deductions = terms.other_deductions
        cancellation.refundable_amount = terms.refundable_amount
        cancellation.refunded_amount = ZERO
        cancellation.remaining_refund = terms.refundable_amount

    # =========================================================================
    # Cancellation
    # =========================================================================

    def open(
        self,
        actor: Actor,
        sale_id: UUID,
        reason: str,
        office_charge_percent: Decimal | int | str | None = None,
        other_deductions: Decimal | int | str = ZERO,
    ) -> Cancellation:
        if not (reason or "").strip():
            raise ValidationError("A cancellation reason is required", field="reason")
        percent = (
            self._settings.default_office_charge_percent
            if office_charge_percent is None
            else to_decimal(office_charge_percent, "office_charge_percent")
        )
        deductions = to_decimal(other_deductions, "other_deductions")

        with self._uow("open_cancellation", actor) as uow:
            sales = SalesService(self._ctx)
            sale = sales.lock_sale(uow, sale_id)
            existing = self._session.scalar(
                select(CancellationModel).where(CancellationModel.sale_id == sale.id)
            )
            if existing is not None:
                raise AlreadyCancelledError(sale.id, "a cancellation already exists for this sale")
            if sale.status == SaleStatus.CANCELLED.value:
                raise AlreadyCancelledError(sale.id, "the sale is already cancelled")

            terms = compute_settlement(
                total_paid=sale.paid_amount,
                office_charge_percent=percent,
                other_deductions=deductions,
            )
            cancellation = CancellationModel(
                sale_id=sale.id,
                client_id=sale.client_id,
                reason=reason.strip(),
                cancellation_date=self._clock.today(),
                status=CancellationStatus.PENDING.value,
                created_by_id=actor.actor_id,
            )
            self._apply_terms(cancellation, terms)
            self._session.add(cancellation)
            sales.mark_cancelled(sale, actor)
            self._session.flush()

            self._audit(uow, actor, "cancellation_opened", "Cancellation", cancellation.id,
                        after={
                            "sale_number": sale.sale_number,
                            "total_paid": str(terms.total_paid),
                            "refundable_amount": str(terms.refundable_amount),
                        })
            logger.info(
                "cancellation_opened",
                extra={
                    "sale_number": sale.sale_number,
                    "total_paid": str(terms.total_paid),
                    "office_charge_amount": str(terms.office_charge_amount),
                    "refundable_amount": str(terms.refundable_amount),
                },
            )
            return cancellation.to_dto()

    def update_terms(
        self,
        actor: Actor,
        cancellation_id: UUID,
        office_charge_percent: Decimal | int | str | None = None,
        other_deductions: Decimal | int | str | None = None,
    ) -> Cancellation:
        with self._uow("update_cancellation_terms", actor) as uow:
            cancellation = self._lock(uow, cancellation_id)
            if cancellation.status != CancellationStatus.PENDING.value:
                raise InvalidStateTransitionError(
                    "Cancellation", cancellation.status, "terms_updated",
                    "terms can change only while Pending",
                )
            if cancellation.refund_lines:
                raise ConflictError(
                    "Refund schedule already generated; terms are fixed",
                    cancellation_id=str(cancellation.id),
                )
            before = str(cancellation.refundable_amount)
            terms = compute_settlement(
                total_paid=cancellation.total_paid,
                office_charge_percent=(
                    cancellation.office_charge_percent
                    if office_charge_percent is None
                    else to_decimal(office_charge_percent, "office_charge_percent")
                ),
                other_deductions=(
                    cancellation.other_deductions
                    if other_deductions is None
                    else to_decimal(other_deductions, "other_deductions")
                ),
            )
            self._apply_terms(cancellation, terms)
            cancellation.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "cancellation_terms_updated", "Cancellation", cancellation.id,
                        before={"refundable_amount": before},
                        after={"refundable_amount": str(terms.refundable_amount)})
            return cancellation.to_dto()

    def approve(self, actor: Actor, cancellation_id: UUID) -> Cancellation:
        with self._uow("approve_cancellation", actor) as uow:
            cancellation = self._lock(uow, cancellation_id)
            self._require_role(actor, DECIDING_ROLES, "approve", cancellation.status)
            self._move(cancellation, CancellationStatus.APPROVED)

            sale = SalesService(self._ctx).lock_sale(uow, cancellation.sale_id)
            land = LandService(self._ctx)
            plot = self._get(PlotModel, sale.plot_id, "Plot")
            parcel = land.lock_parcel(uow, plot.parcel_id)
            plot = self._get_for_update(PlotModel, sale.plot_id, "Plot")
            if plot.status == PlotStatus.SOLD.value and plot.client_id == sale.client_id:
                land.apply_plot_transition(parcel, plot, PlotStatus.AVAILABLE, actor)

            cancellation.decided_by_id = actor.actor_id
            cancellation.decided_at = self._clock.now()
            cancellation.updated_by_id = actor.actor_id
            if cancellation.refundable_amount <= ZERO:
                self._move(cancellation, CancellationStatus.REFUNDED)
            self._session.flush()

            self._audit(uow, actor, "cancellation_approved", "Cancellation", cancellation.id,
                        after={"status": cancellation.status, "plot_number": plot.plot_number})
            return cancellation.to_dto()

    def reject(self, actor: Actor, cancellation_id: UUID, reason: str | None) -> Cancellation:
        with self._uow("reject_cancellation", actor) as uow:
            cancellation = self._lock(uow, cancellation_id)
            self._require_role(actor, DECIDING_ROLES, "reject", cancellation.status)
            if not (reason or "").strip():
                raise ValidationError("Rejection requires a reason", field="reason")
            self._move(cancellation, CancellationStatus.REJECTED)
            cancellation.rejection_reason = reason.strip()
            cancellation.decided_by_id = actor.actor_id
            cancellation.decided_at = self._clock.now()
            cancellation.updated_by_id = actor.actor_id

            sales = SalesService(self._ctx)
            sales.reinstate(sales.lock_sale(uow, cancellation.sale_id), actor)
            self._session.flush()
            self._audit(uow, actor, "cancellation_rejected", "Cancellation", cancellation.id,
                        after={"reason": cancellation.rejection_reason})
            return cancellation.to_dto()

    def withdraw(self, actor: Actor, cancellation_id: UUID) -> None:
        """Drop a Pending request entirely and reinstate the sale."""
        with self._uow("withdraw_cancellation", actor) as uow:
            cancellation = self._lock(uow, cancellation_id)
            if cancellation.status != CancellationStatus.PENDING.value:
                raise InvalidStateTransitionError(
                    "Cancellation", cancellation.status, "withdrawn",
                    "only Pending cancellations can be withdrawn",
                )
            sales = SalesService(self._ctx)
            sales.reinstate(sales.lock_sale(uow, cancellation.sale_id), actor)
            self._session.delete(cancellation)
            self._session.flush()
            self._audit(uow, actor, "cancellation_withdrawn", "Cancellation", cancellation_id)
            logger.info("cancellation_withdrawn", extra={"cancellation_id": str(cancellation_id)})

    def get_cancellation(self, cancellation_id: UUID) -> Cancellation:
        return self._get(CancellationModel, cancellation_id, "Cancellation").to_dto()

    def cancellation_for_sale(self, sale_id: UUID) -> Cancellation:
        cancellation = self._session.scalar(
            select(CancellationModel).where(CancellationModel.sale_id == sale_id)
        )
        if cancellation is None:
            raise NotFoundError("Cancellation", sale_id)
        return cancellation.to_dto()

    # =========================================================================
    # Refund schedule
    # =========================================================================

    def generate_refund_schedule(
        self,
        actor: Actor,
        cancellation_id: UUID,
        count: int | None = None,
        start_date: date | None = None,
        frequency: InstallmentFrequency | None = None,
    ) -> list[RefundLine]:
        with self._uow("generate_refund_schedule", actor) as uow:
            cancellation = self._lock(uow, cancellation_id)
            if cancellation.status != CancellationStatus.APPROVED.value:
                raise InvalidStateTransitionError(
                    "Cancellation", cancellation.status, "scheduled",
                    "refund schedules are generated for Approved cancellations only",
                )
            if cancellation.refund_lines:
                raise ConflictError(
                    "Refund schedule already generated",
                    cancellation_id=str(cancellation.id),
                )

            scheduled = generate_schedule(
                total=cancellation.refundable_amount,
                count=count or self._settings.refund_installment_count,
                frequency=frequency or frequency_for_months(self._settings.refund_frequency_months),
                start_date=start_date or self._clock.today() + relativedelta(months=1),
            )
            lines = []
            for item in scheduled:
                line = RefundLineModel(
                    cancellation_id=cancellation.id,
                    client_id=cancellation.client_id,
                    sequence=item.sequence,
                    due_date=item.due_date,
                    amount=item.amount,
                    document_number=self._ctx.sequences.next_document_number(
                        DocumentKind.REFUND, self._clock.today(),
                    ),
                    payment_status=RefundPaymentStatus.PENDING.value,
                    created_by_id=actor.actor_id,
                )
                cancellation.refund_lines.append(line)
                lines.append(line)
            self._session.flush()

            self._audit(uow, actor, "refund_schedule_generated", "Cancellation", cancellation.id,
                        after={"count": len(lines), "total": str(cancellation.refundable_amount)})
            logger.info(
                "refund_schedule_generated",
                extra={
                    "cancellation_id": str(cancellation.id),
                    "count": len(lines),
                    "refundable_amount": str(cancellation.refundable_amount),
                },
            )
            return [line.to_dto() for line in lines]

    def refund_lines(self, cancellation_id: UUID) -> list[RefundLine]:
        cancellation = self._get(CancellationModel, cancellation_id, "Cancellation")
        return [line.to_dto() for line in cancellation.refund_lines if not line.is_deleted]

    def reconciliation(self, cancellation_id: UUID) -> Reconciliation:
        """Refundable amount against the live schedule; drift shows as a discrepancy."""
        cancellation = self._get(CancellationModel, cancellation_id, "Cancellation")
        return reconcile(
            cancellation.refundable_amount,
            (
                line.amount
                for line in cancellation.refund_lines
                if not line.is_deleted
                and line.payment_status != RefundPaymentStatus.CANCELLED.value
            ),
        )

    def _post_accrual(self, line: RefundLineModel, actor: Actor) -> None:
        LedgerService(self._session, self._clock).post(
            refund_accrual_posting(
                refund_id=line.id,
                refund_number=line.document_number,
                client_id=line.client_id,
                amount=line.amount,
                transaction_date=self._clock.today(),
            ),
            actor.actor_id,
        )

    def submit_refund(self, actor: Actor, refund_id: UUID) -> RefundLine:
        with self._uow("submit_refund", actor) as uow:
            line = self._lock_line(uow, refund_id)
            self._approvals.submit(line, actor)
            return line.to_dto()

    def approve_refund(self, actor: Actor, refund_id: UUID, remarks: str | None = None) -> RefundLine:
        with self._uow("approve_refund", actor) as uow:
            line = self._lock_line(uow, refund_id)
            before = line.approval_status
            self._approvals.approve(
                line, actor,
                on_approved=lambda doc: self._post_accrual(doc, actor),
                remarks=remarks,
            )
            self._audit(uow, actor, "refund_approved", "RefundLine", line.id,
                        before={"approval_status": before},
                        after={"approval_status": line.approval_status})
            return line.to_dto()

    def reject_refund(self, actor: Actor, refund_id: UUID, remarks: str | None) -> RefundLine:
        with self._uow("reject_refund", actor) as uow:
            line = self._lock_line(uow, refund_id)
            self._approvals.reject(line, actor, remarks)
            self._audit(uow, actor, "refund_rejected", "RefundLine", line.id,
                        after={"approval_status": line.approval_status, "remarks": remarks})
            return line.to_dto()

    def void_refund_line(self, actor: Actor, refund_id: UUID) -> RefundLine:
        """Withdraw an unapproved line from the schedule; reconciliation shows the gap."""
        with self._uow("void_refund_line", actor) as uow:
            line = self._lock_line(uow, refund_id)
            ApprovalService.ensure_deletable(line)
            REFUND_PAYMENT_WORKFLOW.require(line.payment_status, RefundPaymentStatus.CANCELLED)
            line.payment_status = RefundPaymentStatus.CANCELLED.value
            line.is_deleted = True
            line.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "refund_line_voided", "RefundLine", line.id)
            return line.to_dto()

    def mark_refund_paid(
        self,
        actor: Actor,
        refund_id: UUID,
        payment_method: PaymentMethod,
        bank_name: str | None = None,
        cheque_number: str | None = None,
        paid_date: date | None = None,
    ) -> RefundLine:
        require_instrument(payment_method, bank_name, cheque_number)
        with self._uow("mark_refund_paid", actor) as uow:
            line = self._lock_line(uow, refund_id)
            self._require_role(actor, PAYING_ROLES, "pay", line.payment_status)
            if line.status != ApprovalStatus.APPROVED:
                raise InvalidStateTransitionError(
                    "RefundLine", line.approval_status, RefundPaymentStatus.PAID.value,
                    "only approved refund lines can be paid",
                )
            REFUND_PAYMENT_WORKFLOW.require(line.payment_status, RefundPaymentStatus.PAID)
            cancellation = self._lock(uow, line.cancellation_id)

            day = paid_date or self._clock.today()
            line.payment_status = RefundPaymentStatus.PAID.value
            line.payment_method = payment_method.value
            line.bank_name = bank_name
            line.cheque_number = cheque_number
            line.paid_date = day
            line.paid_by_id = actor.actor_id
            line.updated_by_id = actor.actor_id
            LedgerService(self._session, self._clock).post(
                refund_payment_posting(
                    refund_id=line.id,
                    refund_number=line.document_number,
                    client_id=line.client_id,
                    amount=line.amount,
                    method=payment_method,
                    transaction_date=day,
                ),
                actor.actor_id,
            )

            progress = refund_progress(
                cancellation.refundable_amount,
                (
                    paid.amount
                    for paid in cancellation.refund_lines
                    if paid.payment_status == RefundPaymentStatus.PAID.value
                ),
                CancellationStatus(cancellation.status),
            )
            cancellation.refunded_amount = progress.refunded
            cancellation.remaining_refund = progress.remaining
            self._move(cancellation, progress.status)
            cancellation.updated_by_id = actor.actor_id
            self._session.flush()

            self._audit(uow, actor, "refund_paid", "RefundLine", line.id,
                        after={
                            "amount": str(line.amount),
                            "refunded_amount": str(progress.refunded),
                            "cancellation_status": cancellation.status,
                        })
            logger.info(
                "refund_paid",
                extra={
                    "refund_number": line.document_number,
                    "amount": str(line.amount),
                    "remaining_refund": str(progress.remaining),
                    "cancellation_status": cancellation.status,
                },
            )
            return line.to_dto()

    def get_refund(self, refund_id: UUID) -> RefundLine:
        return self._get(RefundLineModel, refund_id, "RefundLine").to_dto()

    def refund_approval_queue(self, role: Role) -> list[RefundLine]:
        return [row.to_dto() for row in self._approvals.approval_queue(RefundLineModel, role)]

    def refund_history(self, refund_id: UUID) -> list[ApprovalHistoryEntry]:
        return self._approvals.history(self._get(RefundLineModel, refund_id, "RefundLine"))

    def due_refunds(self, actor: Actor = SYSTEM_ACTOR) -> list[NotificationEvent]:
        """Emit "refund due" for approved, unpaid lines due within the lead window."""
        horizon = self._clock.today() + timedelta(days=self._settings.reminder_lead_days)
        events: list[NotificationEvent] = []
        with self._uow("refund_due_reminders", actor) as uow:
            rows = self._session.execute(
                select(RefundLineModel, ClientModel)
                .join(ClientModel, ClientModel.id == RefundLineModel.client_id)
                .where(
                    RefundLineModel.approval_status == ApprovalStatus.APPROVED.value,
                    RefundLineModel.payment_status == RefundPaymentStatus.PENDING.value,
                    RefundLineModel.is_deleted.is_(False),
                    RefundLineModel.due_date <= horizon,
                )
                .order_by(RefundLineModel.due_date)
            )
            for line, client in rows:
                event = NotificationEvent(
                    kind=NotificationKind.REFUND_DUE,
                    phone=client.phone,
                    name=client.name,
                    amount=round_money(line.amount),
                    reference=line.document_number,
                )
                uow.notify(event)
                events.append(event)
        return events

    def cancellation_stats(self) -> CancellationStats:
        rows = list(self._session.scalars(select(CancellationModel)))
        counts = Counter(CancellationStatus(row.status) for row in rows)
        live = [row for row in rows if row.status != CancellationStatus.REJECTED.value]
        return CancellationStats(
            total=len(rows),
            by_status={status: counts.get(status, 0) for status in CancellationStatus},
            total_paid=sum((row.total_paid for row in live), ZERO),
            office_charges=sum((row.office_charge_amount for row in live), ZERO),
            refundable=sum((row.refundable_amount for row in live), ZERO),
            refunded=sum((row.refunded_amount for row in live), ZERO),
            remaining=sum((row.remaining_refund for row in live), ZERO),
        )
