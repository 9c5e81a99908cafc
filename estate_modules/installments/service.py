"""
InstallmentService -- dated schedules for a sale's Installments stage.

A schedule is generated once per sale.  Payments land on one line and the
same amount is applied to the sale's Installments stage inside the same
unit of work, so the line and stage totals never drift apart.

Transaction boundary: public methods commit on success and roll back on
failure.  ``apply_installment_payment`` runs inside the caller's unit of
work (receipt approval uses it).
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from estate_engines.installment_schedule import (
    InstallmentFrequency,
    InstallmentStatus,
    generate_schedule,
    line_status,
)
from estate_kernel.db.types import round_money, to_decimal
from estate_kernel.domain.approval import Actor
from estate_kernel.domain.events import NotificationEvent, NotificationKind
from estate_kernel.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from estate_kernel.logging_config import get_logger
from estate_modules.base import SYSTEM_ACTOR, ModuleService
from estate_modules.installments.models import ClientStatement, InstallmentLine
from estate_modules.installments.orm import InstallmentLineModel
from estate_modules.sales.models import SaleStatus, StageName
from estate_modules.sales.orm import ClientModel, SaleModel
from estate_modules.sales.service import SalesService

logger = get_logger("modules.installments.service")

ZERO = Decimal("0")


class InstallmentService(ModuleService):
    def _lines(self, sale_id: UUID, for_update: bool = False) -> list[InstallmentLineModel]:
        stmt = (
            select(InstallmentLineModel)
            .where(InstallmentLineModel.sale_id == sale_id)
            .order_by(InstallmentLineModel.sequence)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self._session.scalars(stmt))

    def _status(self, line: InstallmentLineModel, today: date) -> InstallmentStatus:
        return line_status(
            line.amount,
            line.paid_amount,
            line.due_date,
            today,
            self._settings.missed_after_days,
        )

    def generate_schedule(
        self,
        actor: Actor,
        sale_id: UUID,
        count: int,
        frequency: InstallmentFrequency,
        start_date: date,
        total: Decimal | int | str | None = None,
    ) -> list[InstallmentLine]:
        with self._uow("generate_installment_schedule", actor) as uow:
            sales = SalesService(self._ctx)
            sale = sales.lock_sale(uow, sale_id)
            if sale.status == SaleStatus.CANCELLED.value:
                raise InvalidStateTransitionError(
                    "Sale", sale.status, "scheduled", "cancelled sales take no schedule",
                )
            if self._lines(sale.id):
                raise ConflictError(
                    f"Sale {sale.sale_number} already has an installment schedule",
                    sale_number=sale.sale_number,
                )

            stage = sale.stage(StageName.INSTALLMENTS)
            if total is None:
                if stage is None:
                    raise ValidationError(
                        f"Sale {sale.sale_number} has no Installments stage; pass a total",
                        field="total",
                    )
                amount = stage.planned_amount
            else:
                amount = to_decimal(total, "total")

            scheduled = generate_schedule(
                total=amount, count=count, frequency=frequency, start_date=start_date,
            )
            today = self._clock.today()
            models = []
            for item in scheduled:
                line = InstallmentLineModel(
                    sale_id=sale.id,
                    client_id=sale.client_id,
                    sequence=item.sequence,
                    frequency=frequency.value,
                    due_date=item.due_date,
                    amount=item.amount,
                    paid_amount=ZERO,
                    created_by_id=actor.actor_id,
                )
                line.status = self._status(line, today).value
                self._session.add(line)
                models.append(line)

            if stage is not None:
                stage.expected_date = scheduled[-1].due_date
                sales.recompute(sale)
            self._session.flush()

            self._audit(uow, actor, "installment_schedule_generated", "Sale", sale.id,
                        after={"count": count, "total": str(amount), "frequency": frequency.value})
            logger.info(
                "installment_schedule_generated",
                extra={
                    "sale_number": sale.sale_number,
                    "count": count,
                    "frequency": frequency.value,
                    "total": str(amount),
                },
            )
            return [line.to_dto() for line in models]

    def apply_installment_payment(
        self,
        sale: SaleModel,
        sequence: int,
        amount: Decimal,
        actor: Actor,
        paid_on: date | None = None,
    ) -> InstallmentLineModel:
        """Pay one line and the Installments stage. Caller holds the sale lock."""
        if amount <= ZERO:
            raise ValidationError("Payment amount must be positive", field="amount")
        line = self._session.execute(
            select(InstallmentLineModel)
            .where(
                InstallmentLineModel.sale_id == sale.id,
                InstallmentLineModel.sequence == sequence,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise NotFoundError("InstallmentLine", f"{sale.sale_number}#{sequence}")
        if amount > line.outstanding:
            raise InsufficientFundsError(
                f"{sale.sale_number}#{sequence}", amount, line.outstanding,
            )

        day = paid_on or self._clock.today()
        line.paid_amount = line.paid_amount + amount
        line.status = self._status(line, day).value
        if line.status == InstallmentStatus.PAID.value:
            line.paid_date = day
        line.updated_by_id = actor.actor_id

        SalesService(self._ctx).apply_stage_payment(sale, StageName.INSTALLMENTS, amount, actor)
        logger.info(
            "installment_payment_applied",
            extra={
                "sale_number": sale.sale_number,
                "sequence": sequence,
                "amount": str(amount),
                "line_status": line.status,
            },
        )
        return line

    def apply_payment(
        self,
        actor: Actor,
        sale_id: UUID,
        sequence: int,
        amount: Decimal | int | str,
    ) -> InstallmentLine:
        value = to_decimal(amount, "amount")
        with self._uow("apply_installment_payment", actor) as uow:
            sale = SalesService(self._ctx).lock_sale(uow, sale_id)
            line = self.apply_installment_payment(sale, sequence, value, actor)
            self._audit(uow, actor, "installment_paid", "InstallmentLine", line.id,
                        after={"paid_amount": str(line.paid_amount), "status": line.status})
            return line.to_dto()

    def sweep_overdue(self, actor: Actor = SYSTEM_ACTOR) -> list[InstallmentLine]:
        """Reclassify unpaid lines; notify on lines that just became Missed."""
        today = self._clock.today()
        changed: list[InstallmentLine] = []
        with self._uow("sweep_overdue_installments", actor) as uow:
            lines = list(
                self._session.scalars(
                    select(InstallmentLineModel)
                    .join(SaleModel, SaleModel.id == InstallmentLineModel.sale_id)
                    .where(
                        InstallmentLineModel.status != InstallmentStatus.PAID.value,
                        SaleModel.status != SaleStatus.CANCELLED.value,
                    )
                    .order_by(InstallmentLineModel.due_date, InstallmentLineModel.sequence)
                )
            )
            for line in lines:
                status = self._status(line, today)
                if status.value == line.status:
                    continue
                line.status = status.value
                line.updated_by_id = actor.actor_id
                changed.append(line.to_dto())
                if status == InstallmentStatus.MISSED:
                    client = self._session.get(ClientModel, line.client_id)
                    uow.notify(
                        NotificationEvent(
                            kind=NotificationKind.INSTALLMENT_MISSED,
                            phone=client.phone,
                            name=client.name,
                            amount=round_money(line.outstanding),
                            reference=f"installment {line.sequence} due {line.due_date.isoformat()}",
                        )
                    )
            self._session.flush()
            logger.info("installment_sweep_completed", extra={"changed": len(changed)})
        return changed

    def due_reminders(self, actor: Actor = SYSTEM_ACTOR) -> list[NotificationEvent]:
        """Emit an "installment due" event per unpaid line due within the lead window."""
        today = self._clock.today()
        horizon = today + timedelta(days=self._settings.reminder_lead_days)
        events: list[NotificationEvent] = []
        with self._uow("installment_due_reminders", actor) as uow:
            rows = self._session.execute(
                select(InstallmentLineModel, ClientModel)
                .join(ClientModel, ClientModel.id == InstallmentLineModel.client_id)
                .join(SaleModel, SaleModel.id == InstallmentLineModel.sale_id)
                .where(
                    SaleModel.status != SaleStatus.CANCELLED.value,
                    InstallmentLineModel.status.in_(
                        [InstallmentStatus.PENDING.value, InstallmentStatus.PARTIAL.value]
                    ),
                    InstallmentLineModel.due_date >= today,
                    InstallmentLineModel.due_date <= horizon,
                )
                .order_by(InstallmentLineModel.due_date)
            )
            for line, client in rows:
                event = NotificationEvent(
                    kind=NotificationKind.INSTALLMENT_DUE,
                    phone=client.phone,
                    name=client.name,
                    amount=round_money(line.outstanding),
                    reference=f"installment {line.sequence} due {line.due_date.isoformat()}",
                )
                uow.notify(event)
                events.append(event)
        return events

    def lines_for_sale(self, sale_id: UUID) -> list[InstallmentLine]:
        return [line.to_dto() for line in self._lines(sale_id)]

    def client_statement(self, client_id: UUID) -> ClientStatement:
        self._get(ClientModel, client_id, "Client")
        lines = [
            line.to_dto()
            for line in self._session.scalars(
                select(InstallmentLineModel)
                .where(InstallmentLineModel.client_id == client_id)
                .order_by(InstallmentLineModel.due_date, InstallmentLineModel.sequence)
            )
        ]
        total_due = sum((line.amount for line in lines), ZERO)
        total_paid = sum((line.paid_amount for line in lines), ZERO)
        return ClientStatement(
            client_id=client_id,
            total_lines=len(lines),
            paid_lines=sum(1 for line in lines if line.status == InstallmentStatus.PAID),
            overdue_lines=sum(
                1 for line in lines
                if line.status in (InstallmentStatus.OVERDUE, InstallmentStatus.MISSED)
            ),
            total_due=total_due,
            total_paid=total_paid,
            outstanding=total_due - total_paid,
            lines=tuple(lines),
        )

    def unpaid_count(self, sale_id: UUID) -> int:
        return self._session.scalar(
            select(func.count(InstallmentLineModel.id)).where(
                InstallmentLineModel.sale_id == sale_id,
                InstallmentLineModel.status != InstallmentStatus.PAID.value,
            )
        ) or 0
