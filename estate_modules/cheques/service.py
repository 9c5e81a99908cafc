"""
ChequeService -- register of cheque instruments and their bank settlement.

A cheque is recorded against a client and optionally the sale, receipt or
refund line it pays.  While open it ages by due date (Pending, Due Today,
Overdue); the daily sweep keeps that current.  Clearing, bouncing and
cancelling are final and are done by the finance roles.

The register tracks the instrument only.  Money reaches the ledger through
the receipt or refund line the cheque belongs to.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from estate_kernel.db.types import round_money, to_decimal
from estate_kernel.domain.approval import LEVEL_ROLES, Actor
from estate_kernel.domain.events import NotificationEvent, NotificationKind
from estate_kernel.exceptions import ForbiddenError, InvalidStateTransitionError, ValidationError
from estate_kernel.logging_config import get_logger
from estate_kernel.services.unit_of_work import UnitOfWork
from estate_modules.base import SYSTEM_ACTOR, ModuleService
from estate_modules.cancellations.orm import RefundLineModel
from estate_modules.cheques.models import (
    OPEN_CHEQUE_STATUSES,
    Cheque,
    ChequeStats,
    ChequeStatus,
    ChequeType,
    status_for_date,
)
from estate_modules.cheques.orm import ChequeModel
from estate_modules.cheques.workflows import CHEQUE_WORKFLOW
from estate_modules.receipts.orm import ReceiptModel
from estate_modules.sales.orm import ClientModel, SaleModel

logger = get_logger("modules.cheques.service")

CHEQUE_LOCK = "cheque"
ZERO = Decimal("0")

SETTLING_ROLES = LEVEL_ROLES[1] | LEVEL_ROLES[2]

_EDITABLE_FIELDS = frozenset({
    "cheque_number",
    "bank_name",
    "branch_name",
    "cheque_type",
    "issue_date",
    "due_date",
    "amount",
    "notes",
})

_OPEN_VALUES = [status.value for status in OPEN_CHEQUE_STATUSES]


def _validate(cheque: ChequeModel) -> None:
    if not (cheque.cheque_number or "").strip():
        raise ValidationError("Cheque number is required", field="cheque_number")
    if not (cheque.bank_name or "").strip():
        raise ValidationError("Bank name is required", field="bank_name")
    if cheque.amount <= ZERO:
        raise ValidationError("Cheque amount must be positive", field="amount")


def _required_reason(reason: str | None, field: str) -> str:
    text = (reason or "").strip()
    if not text:
        raise ValidationError("A reason is required", field=field)
    return text


class ChequeService(ModuleService):
    def _lock(self, uow: UnitOfWork, cheque_id: UUID) -> ChequeModel:
        uow.lock(CHEQUE_LOCK, cheque_id)
        return self._get_for_update(ChequeModel, cheque_id, "Cheque")

    def _check_links(self, cheque: ChequeModel) -> None:
        """Every linked document must belong to the cheque's client."""
        self._get(ClientModel, cheque.client_id, "Client")
        links = (
            (SaleModel, cheque.sale_id, "Sale", "sale_id"),
            (ReceiptModel, cheque.receipt_id, "Receipt", "receipt_id"),
            (RefundLineModel, cheque.refund_line_id, "RefundLine", "refund_line_id"),
        )
        for model, entity_id, entity_type, field in links:
            if entity_id is None:
                continue
            linked = self._get(model, entity_id, entity_type)
            if linked.client_id != cheque.client_id:
                raise ValidationError(
                    f"{entity_type} {entity_id} belongs to another client", field=field,
                )

    def _settle(self, cheque: ChequeModel, target: ChequeStatus, actor: Actor) -> None:
        if actor.role not in SETTLING_ROLES:
            raise ForbiddenError(actor.role.value, f"mark {target.value.lower()}", cheque.status)
        if cheque.status == target.value:
            raise InvalidStateTransitionError(
                "Cheque", cheque.status, target.value, f"cheque is already {target.value.lower()}",
            )
        CHEQUE_WORKFLOW.require(cheque.status, target)
        cheque.status = target.value
        cheque.updated_by_id = actor.actor_id

    # =========================================================================
    # Register
    # =========================================================================

    def register_cheque(
        self,
        actor: Actor,
        client_id: UUID,
        cheque_number: str,
        bank_name: str,
        amount: Decimal | int | str,
        due_date: date,
        cheque_type: ChequeType = ChequeType.CURRENT,
        issue_date: date | None = None,
        branch_name: str | None = None,
        sale_id: UUID | None = None,
        receipt_id: UUID | None = None,
        refund_line_id: UUID | None = None,
        notes: str | None = None,
    ) -> Cheque:
        today = self._clock.today()
        cheque = ChequeModel(
            cheque_number=(cheque_number or "").strip(),
            bank_name=(bank_name or "").strip(),
            branch_name=branch_name,
            cheque_type=cheque_type.value,
            issue_date=issue_date or today,
            due_date=due_date,
            amount=to_decimal(amount, "amount"),
            client_id=client_id,
            sale_id=sale_id,
            receipt_id=receipt_id,
            refund_line_id=refund_line_id,
            status=status_for_date(due_date, today).value,
            notes=notes,
            created_by_id=actor.actor_id,
        )
        _validate(cheque)
        with self._uow("register_cheque", actor) as uow:
            self._check_links(cheque)
            self._session.add(cheque)
            self._session.flush()
            self._audit(uow, actor, "cheque_registered", "Cheque", cheque.id,
                        after={"cheque_number": cheque.cheque_number, "amount": str(cheque.amount),
                               "status": cheque.status})
            logger.info(
                "cheque_registered",
                extra={
                    "cheque_number": cheque.cheque_number,
                    "cheque_type": cheque.cheque_type,
                    "due_date": cheque.due_date.isoformat(),
                    "amount": str(cheque.amount),
                },
            )
            return cheque.to_dto()

    def update_cheque(self, actor: Actor, cheque_id: UUID, **changes: Any) -> Cheque:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cheque fields cannot be edited: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        with self._uow("update_cheque", actor) as uow:
            cheque = self._lock(uow, cheque_id)
            if not ChequeStatus(cheque.status).is_open:
                raise InvalidStateTransitionError(
                    "Cheque", cheque.status, "edited", "settled cheques are final",
                )
            for key, value in changes.items():
                if key == "amount":
                    value = to_decimal(value, "amount")
                elif key == "cheque_type":
                    value = value.value
                setattr(cheque, key, value)
            _validate(cheque)
            if "due_date" in changes:
                dated = status_for_date(cheque.due_date, self._clock.today())
                if dated.value != cheque.status:
                    CHEQUE_WORKFLOW.require(cheque.status, dated)
                    cheque.status = dated.value
            cheque.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "cheque_updated", "Cheque", cheque.id,
                        after={key: str(getattr(cheque, key)) for key in changes})
            return cheque.to_dto()

    def delete_cheque(self, actor: Actor, cheque_id: UUID) -> None:
        with self._uow("delete_cheque", actor) as uow:
            cheque = self._lock(uow, cheque_id)
            if cheque.status == ChequeStatus.CLEARED.value:
                raise InvalidStateTransitionError(
                    "Cheque", cheque.status, "deleted", "a cleared cheque stays on record",
                )
            cheque.is_deleted = True
            cheque.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "cheque_deleted", "Cheque", cheque.id)

    # =========================================================================
    # Settlement
    # =========================================================================

    def mark_cleared(self, actor: Actor, cheque_id: UUID, cleared_on: date | None = None) -> Cheque:
        with self._uow("clear_cheque", actor) as uow:
            cheque = self._lock(uow, cheque_id)
            before = cheque.status
            self._settle(cheque, ChequeStatus.CLEARED, actor)
            cheque.cleared_date = cleared_on or self._clock.today()
            cheque.cleared_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "cheque_cleared", "Cheque", cheque.id,
                        before={"status": before}, after={"status": cheque.status})
            logger.info("cheque_cleared", extra={"cheque_number": cheque.cheque_number})
            return cheque.to_dto()

    def mark_bounced(
        self, actor: Actor, cheque_id: UUID, reason: str, bounced_on: date | None = None,
    ) -> Cheque:
        text = _required_reason(reason, "bounce_reason")
        with self._uow("bounce_cheque", actor) as uow:
            cheque = self._lock(uow, cheque_id)
            before = cheque.status
            self._settle(cheque, ChequeStatus.BOUNCED, actor)
            cheque.bounce_date = bounced_on or self._clock.today()
            cheque.bounce_reason = text
            cheque.bounced_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "cheque_bounced", "Cheque", cheque.id,
                        before={"status": before},
                        after={"status": cheque.status, "reason": text})
            logger.warning(
                "cheque_bounced",
                extra={"cheque_number": cheque.cheque_number, "amount": str(cheque.amount)},
            )
            return cheque.to_dto()

    def cancel_cheque(
        self, actor: Actor, cheque_id: UUID, reason: str, cancelled_on: date | None = None,
    ) -> Cheque:
        text = _required_reason(reason, "cancel_reason")
        with self._uow("cancel_cheque", actor) as uow:
            cheque = self._lock(uow, cheque_id)
            before = cheque.status
            self._settle(cheque, ChequeStatus.CANCELLED, actor)
            cheque.cancelled_date = cancelled_on or self._clock.today()
            cheque.cancel_reason = text
            cheque.cancelled_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "cheque_cancelled", "Cheque", cheque.id,
                        before={"status": before},
                        after={"status": cheque.status, "reason": text})
            return cheque.to_dto()

    # =========================================================================
    # Periodic jobs
    # =========================================================================

    def sweep_statuses(self, actor: Actor = SYSTEM_ACTOR) -> list[Cheque]:
        """Move open cheques to Due Today or Overdue as their date arrives."""
        today = self._clock.today()
        changed: list[Cheque] = []
        with self._uow("sweep_cheque_statuses", actor):
            cheques = list(
                self._session.scalars(
                    select(ChequeModel)
                    .where(
                        ChequeModel.is_deleted.is_(False),
                        ChequeModel.status.in_(
                            [ChequeStatus.PENDING.value, ChequeStatus.DUE_TODAY.value]
                        ),
                        ChequeModel.due_date <= today,
                    )
                    .order_by(ChequeModel.due_date)
                )
            )
            for cheque in cheques:
                target = status_for_date(cheque.due_date, today)
                if target.value == cheque.status:
                    continue
                CHEQUE_WORKFLOW.require(cheque.status, target)
                cheque.status = target.value
                cheque.updated_by_id = actor.actor_id
                changed.append(cheque.to_dto())
            self._session.flush()
            logger.info("cheque_sweep_completed", extra={"changed": len(changed)})
        return changed

    def due_reminders(self, actor: Actor = SYSTEM_ACTOR) -> list[NotificationEvent]:
        """Emit a "cheque due" event for every open cheque due today."""
        today = self._clock.today()
        events: list[NotificationEvent] = []
        with self._uow("cheque_due_reminders", actor) as uow:
            rows = list(
                self._session.execute(
                    select(ChequeModel, ClientModel)
                    .join(ClientModel, ClientModel.id == ChequeModel.client_id)
                    .where(
                        ChequeModel.is_deleted.is_(False),
                        ChequeModel.status.in_(
                            [ChequeStatus.PENDING.value, ChequeStatus.DUE_TODAY.value]
                        ),
                        ChequeModel.due_date == today,
                    )
                    .order_by(ChequeModel.cheque_number)
                )
            )
            for cheque, client in rows:
                if not client.phone:
                    logger.info(
                        "cheque_reminder_skipped",
                        extra={"cheque_number": cheque.cheque_number, "reason": "no phone"},
                    )
                    continue
                event = NotificationEvent(
                    kind=NotificationKind.CHEQUE_DUE,
                    phone=client.phone,
                    name=client.name,
                    amount=round_money(cheque.amount),
                    reference=f"cheque {cheque.cheque_number} due {cheque.due_date.isoformat()}",
                )
                uow.notify(event)
                events.append(event)
                if cheque.status != ChequeStatus.DUE_TODAY.value:
                    cheque.status = ChequeStatus.DUE_TODAY.value
                    cheque.updated_by_id = actor.actor_id
            self._session.flush()
        return events

    # =========================================================================
    # Reads
    # =========================================================================

    def get_cheque(self, cheque_id: UUID) -> Cheque:
        return self._get(ChequeModel, cheque_id, "Cheque").to_dto()

    def list_cheques(
        self,
        status: ChequeStatus | None = None,
        cheque_type: ChequeType | None = None,
        client_id: UUID | None = None,
        sale_id: UUID | None = None,
        due_from: date | None = None,
        due_to: date | None = None,
    ) -> list[Cheque]:
        stmt = select(ChequeModel).where(ChequeModel.is_deleted.is_(False))
        if status is not None:
            stmt = stmt.where(ChequeModel.status == status.value)
        if cheque_type is not None:
            stmt = stmt.where(ChequeModel.cheque_type == cheque_type.value)
        if client_id is not None:
            stmt = stmt.where(ChequeModel.client_id == client_id)
        if sale_id is not None:
            stmt = stmt.where(ChequeModel.sale_id == sale_id)
        if due_from is not None:
            stmt = stmt.where(ChequeModel.due_date >= due_from)
        if due_to is not None:
            stmt = stmt.where(ChequeModel.due_date <= due_to)
        stmt = stmt.order_by(ChequeModel.due_date.desc(), ChequeModel.cheque_number)
        return [row.to_dto() for row in self._session.scalars(stmt)]

    def due_cheques(self) -> list[Cheque]:
        """Open cheques due today or earlier, oldest first."""
        rows = self._session.scalars(
            select(ChequeModel)
            .where(
                ChequeModel.is_deleted.is_(False),
                ChequeModel.status.in_(_OPEN_VALUES),
                ChequeModel.due_date <= self._clock.today(),
            )
            .order_by(ChequeModel.due_date, ChequeModel.cheque_number)
        )
        return [row.to_dto() for row in rows]

    def upcoming_cheques(self, days: int = 7) -> list[Cheque]:
        if days < 0:
            raise ValidationError(f"days must not be negative, got {days}", field="days")
        today = self._clock.today()
        rows = self._session.scalars(
            select(ChequeModel)
            .where(
                ChequeModel.is_deleted.is_(False),
                ChequeModel.status.in_(
                    [ChequeStatus.PENDING.value, ChequeStatus.DUE_TODAY.value]
                ),
                ChequeModel.due_date >= today,
                ChequeModel.due_date <= today + timedelta(days=days),
            )
            .order_by(ChequeModel.due_date, ChequeModel.cheque_number)
        )
        return [row.to_dto() for row in rows]

    def cheque_stats(self) -> ChequeStats:
        rows = list(
            self._session.scalars(select(ChequeModel).where(ChequeModel.is_deleted.is_(False)))
        )
        counts = Counter(ChequeStatus(row.status) for row in rows)
        amounts: dict[ChequeStatus, Decimal] = defaultdict(lambda: ZERO)
        for row in rows:
            amounts[ChequeStatus(row.status)] += row.amount
        return ChequeStats(
            total_count=len(rows),
            total_amount=sum((row.amount for row in rows), ZERO),
            counts={status: counts.get(status, 0) for status in ChequeStatus},
            amounts={status: amounts[status] for status in ChequeStatus},
        )
