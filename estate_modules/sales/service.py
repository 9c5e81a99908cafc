"""
SalesService -- sale creation and the per-sale stage account.

Creating a sale sells the plot's area (LandService under the parcel lock),
opens the stage account, and posts the sale (Dr Accounts Receivable /
Cr Sales Revenue) in one unit of work.  Every change to a stage's received
amount is followed by the full recompute from
``estate_engines.stage_account``; totals are never patched incrementally.

Transaction boundary: public methods commit on success and roll back on
failure.  ``lock_sale``, ``apply_stage_payment``, ``mark_cancelled`` and
``reinstate`` run inside the caller's unit of work.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from estate_engines.ledger_pairs import sale_posting
from estate_engines.stage_account import (
    STAGE_ORDER,
    default_stage_plan,
    recompute_sale,
)
from estate_kernel.db.types import to_decimal
from estate_kernel.domain.approval import Actor
from estate_kernel.domain.identifiers import DocumentKind
from estate_kernel.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from estate_kernel.invariants import EstateInvariant, ensure
from estate_kernel.logging_config import get_logger
from estate_kernel.services.ledger_service import LedgerService
from estate_kernel.services.unit_of_work import UnitOfWork
from estate_modules.base import ModuleService
from estate_modules.land.models import PlotStatus
from estate_modules.land.orm import PlotModel
from estate_modules.land.service import LandService
from estate_modules.sales.models import (
    Client,
    Sale,
    SalesStats,
    SaleStatus,
    StageInput,
    StageName,
)
from estate_modules.sales.orm import ClientModel, SaleModel, SaleStageModel
from estate_modules.sales.workflows import SALE_WORKFLOW

logger = get_logger("modules.sales.service")

SALE_LOCK = "sale"
ZERO = Decimal("0")


class SalesService(ModuleService):
    # =========================================================================
    # Clients
    # =========================================================================

    def register_client(
        self,
        actor: Actor,
        name: str,
        phone: str | None = None,
        email: str | None = None,
        address: str | None = None,
    ) -> Client:
        if not (name or "").strip():
            raise ValidationError("Client name is required", field="name")
        with self._uow("register_client", actor) as uow:
            client = ClientModel(
                name=name.strip(),
                phone=phone,
                email=email,
                address=address,
                created_by_id=actor.actor_id,
            )
            self._session.add(client)
            self._session.flush()
            self._audit(uow, actor, "client_registered", "Client", client.id)
            return client.to_dto()

    def get_client(self, client_id: UUID) -> Client:
        return self._get(ClientModel, client_id, "Client").to_dto()

    # =========================================================================
    # Helpers run inside the caller's unit of work
    # =========================================================================

    def lock_sale(self, uow: UnitOfWork, sale_id: UUID) -> SaleModel:
        uow.lock(SALE_LOCK, sale_id)
        return self._get_for_update(SaleModel, sale_id, "Sale")

    def recompute(self, sale: SaleModel) -> SaleModel:
        """Full recompute of stage states and sale totals."""
        totals = recompute_sale(
            total_price=sale.total_price,
            status=SaleStatus(sale.status),
            stages=tuple(stage.to_state() for stage in sale.stages),
            today=self._clock.today(),
        )
        for model, state in zip(sale.stages, totals.stages):
            model.apply_state(state)
        if totals.status.value != sale.status:
            SALE_WORKFLOW.require(sale.status, totals.status)
            logger.info(
                "sale_status_changed",
                extra={
                    "sale_number": sale.sale_number,
                    "from_status": sale.status,
                    "to_status": totals.status.value,
                },
            )
            sale.status = totals.status.value
        sale.paid_amount = totals.paid
        sale.due_amount = totals.due
        self._session.flush()

        received = sum((s.received_amount for s in sale.stages), ZERO)
        ensure(
            sale.paid_amount == received and sale.due_amount == sale.total_price - received,
            EstateInvariant.SALE_TOTALS,
            f"Sale {sale.sale_number} totals disagree with its stages",
            sale_number=sale.sale_number,
        )
        return sale

    def apply_stage_payment(
        self, sale: SaleModel, stage_name: StageName, amount: Decimal, actor: Actor,
    ) -> SaleModel:
        if amount <= ZERO:
            raise ValidationError("Payment amount must be positive", field="amount")
        if sale.status == SaleStatus.CANCELLED.value:
            raise InvalidStateTransitionError(
                "Sale", sale.status, "paid", "cancelled sales accept no payments",
            )
        stage = sale.stage(stage_name)
        if stage is None:
            raise NotFoundError("SaleStage", f"{sale.sale_number}/{stage_name.value}")
        stage.received_amount = stage.received_amount + amount
        sale.updated_by_id = actor.actor_id
        self.recompute(sale)
        logger.info(
            "stage_payment_applied",
            extra={
                "sale_number": sale.sale_number,
                "stage": stage_name.value,
                "amount": str(amount),
                "paid_amount": str(sale.paid_amount),
                "due_amount": str(sale.due_amount),
            },
        )
        return sale

    def mark_cancelled(self, sale: SaleModel, actor: Actor) -> None:
        SALE_WORKFLOW.require(sale.status, SaleStatus.CANCELLED)
        sale.status = SaleStatus.CANCELLED.value
        sale.updated_by_id = actor.actor_id
        self._session.flush()

    def reinstate(self, sale: SaleModel, actor: Actor) -> None:
        """Cancelled -> Active, then recompute (a fully paid sale completes)."""
        SALE_WORKFLOW.require(sale.status, SaleStatus.ACTIVE)
        sale.status = SaleStatus.ACTIVE.value
        sale.updated_by_id = actor.actor_id
        self.recompute(sale)

    # =========================================================================
    # Sales
    # =========================================================================

    @staticmethod
    def _stage_plan(
        total: Decimal,
        stages: Sequence[StageInput] | None,
        booking_amount: Decimal | None,
    ) -> list[StageInput]:
        if stages is None:
            booking = total if booking_amount is None else booking_amount
            if booking <= ZERO:
                raise ValidationError("Booking amount must be positive", field="booking_amount")
            return [StageInput(name, amount) for name, amount in default_stage_plan(total, booking)]

        names = [s.name for s in stages]
        if not stages:
            raise ValidationError("A sale needs at least one stage", field="stages")
        if len(set(names)) != len(names):
            raise ValidationError("Stage names must be unique", field="stages")
        if any(s.planned_amount < ZERO for s in stages):
            raise ValidationError("Stage amounts cannot be negative", field="stages")
        planned = sum((s.planned_amount for s in stages), ZERO)
        if planned != total:
            raise ValidationError(
                f"Stage amounts {planned} must equal the total price {total}",
                field="stages",
            )
        return sorted(stages, key=lambda s: STAGE_ORDER.index(s.name))

    def create_sale(
        self,
        actor: Actor,
        client_id: UUID,
        plot_id: UUID,
        total_price: Decimal | int | str,
        stages: Sequence[StageInput] | None = None,
        booking_amount: Decimal | int | str | None = None,
        sale_date: date | None = None,
        notes: str | None = None,
    ) -> Sale:
        total = to_decimal(total_price, "total_price")
        if total <= ZERO:
            raise ValidationError("Total price must be positive", field="total_price")
        booking = to_decimal(booking_amount, "booking_amount") if booking_amount is not None else None
        plan = self._stage_plan(total, stages, booking)
        day = sale_date or self._clock.today()

        with self._uow("create_sale", actor) as uow:
            client = self._get(ClientModel, client_id, "Client")
            land = LandService(self._ctx)
            plot = self._get(PlotModel, plot_id, "Plot")
            parcel = land.lock_parcel(uow, plot.parcel_id)
            plot = self._get_for_update(PlotModel, plot_id, "Plot")
            if plot.status == PlotStatus.SOLD.value:
                raise InvalidStateTransitionError(
                    "Plot", plot.status, PlotStatus.SOLD.value, "plot is already sold",
                )

            number = self._ctx.sequences.next_document_number(
                DocumentKind.SALE, self._clock.today(),
            )
            land.apply_plot_transition(parcel, plot, PlotStatus.SOLD, actor, client_id=client.id, on=day)

            sale = SaleModel(
                sale_number=number,
                client_id=client.id,
                plot_id=plot.id,
                total_price=total,
                paid_amount=ZERO,
                due_amount=total,
                status=SaleStatus.ACTIVE.value,
                sale_date=day,
                notes=notes,
                created_by_id=actor.actor_id,
            )
            for position, stage in enumerate(plan):
                sale.stages.append(
                    SaleStageModel(
                        position=position,
                        name=stage.name.value,
                        planned_amount=stage.planned_amount,
                        received_amount=ZERO,
                        due_amount=stage.planned_amount,
                        expected_date=stage.expected_date,
                        created_by_id=actor.actor_id,
                    )
                )
            self._session.add(sale)
            self._session.flush()
            self.recompute(sale)

            LedgerService(self._session, self._clock).post(
                sale_posting(
                    sale_id=sale.id,
                    sale_number=number,
                    client_id=client.id,
                    total_price=total,
                    transaction_date=day,
                ),
                actor.actor_id,
            )
            sale.posted_to_ledger = True
            self._session.flush()

            self._audit(uow, actor, "sale_created", "Sale", sale.id,
                        after={"sale_number": number, "total_price": str(total)})
            logger.info(
                "sale_created",
                extra={
                    "sale_number": number,
                    "plot_number": plot.plot_number,
                    "total_price": str(total),
                    "stage_count": len(plan),
                },
            )
            return sale.to_dto()

    def get_sale(self, sale_id: UUID) -> Sale:
        return self._get(SaleModel, sale_id, "Sale").to_dto()

    def get_sale_by_number(self, sale_number: str) -> Sale:
        sale = self._session.scalar(select(SaleModel).where(SaleModel.sale_number == sale_number))
        if sale is None:
            raise NotFoundError("Sale", sale_number)
        return sale.to_dto()

    def record_stage_payment(
        self,
        actor: Actor,
        sale_id: UUID,
        stage_name: StageName,
        amount: Decimal | int | str,
    ) -> Sale:
        """Apply a payment directly to a stage (e.g. a migrated or adjusted balance)."""
        value = to_decimal(amount, "amount")
        with self._uow("record_stage_payment", actor) as uow:
            sale = self.lock_sale(uow, sale_id)
            before = str(sale.paid_amount)
            self.apply_stage_payment(sale, stage_name, value, actor)
            self._audit(uow, actor, "stage_payment_recorded", "Sale", sale.id,
                        before={"paid_amount": before},
                        after={"paid_amount": str(sale.paid_amount), "stage": stage_name.value})
            return sale.to_dto()

    def refresh_stage_statuses(self, actor: Actor, sale_id: UUID) -> Sale:
        """Re-run the recompute, e.g. after an expected date has lapsed."""
        with self._uow("refresh_stage_statuses", actor) as uow:
            sale = self.lock_sale(uow, sale_id)
            return self.recompute(sale).to_dto()

    def _set_status(self, actor: Actor, sale_id: UUID, target: SaleStatus, operation: str) -> Sale:
        with self._uow(operation, actor) as uow:
            sale = self.lock_sale(uow, sale_id)
            before = sale.status
            SALE_WORKFLOW.require(sale.status, target)
            sale.status = target.value
            sale.updated_by_id = actor.actor_id
            self.recompute(sale)
            self._audit(uow, actor, operation, "Sale", sale.id,
                        before={"status": before}, after={"status": sale.status})
            return sale.to_dto()

    def put_on_hold(self, actor: Actor, sale_id: UUID) -> Sale:
        return self._set_status(actor, sale_id, SaleStatus.ON_HOLD, "sale_put_on_hold")

    def resume(self, actor: Actor, sale_id: UUID) -> Sale:
        return self._set_status(actor, sale_id, SaleStatus.ACTIVE, "sale_resumed")

    def sales_stats(self, today: date | None = None) -> SalesStats:
        day = today or self._clock.today()
        sales = list(self._session.scalars(select(SaleModel)))
        this_month = [s for s in sales if (s.sale_date.year, s.sale_date.month) == (day.year, day.month)]
        counts = Counter(SaleStatus(s.status) for s in sales)
        live = [s for s in sales if s.status != SaleStatus.CANCELLED.value]
        return SalesStats(
            total_sales=len(sales),
            total_value=sum((s.total_price for s in live), ZERO),
            total_received=sum((s.paid_amount for s in live), ZERO),
            total_due=sum((s.due_amount for s in live), ZERO),
            by_status={status: counts.get(status, 0) for status in SaleStatus},
            this_month_count=len(this_month),
            this_month_value=sum((s.total_price for s in this_month), ZERO),
        )

    def open_sale_ids(self) -> list[UUID]:
        return list(
            self._session.scalars(
                select(SaleModel.id).where(
                    SaleModel.status.in_([SaleStatus.ACTIVE.value, SaleStatus.ON_HOLD.value])
                )
            )
        )
