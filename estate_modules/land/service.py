"""
LandService -- parcel area ledger and plot lifecycle.

Every mutation locks the owning parcel (``land_parcel:<id>``) for the whole
unit of work, re-reads the parcel row, applies one pure move from
``estate_engines.land_area`` and writes the new balance back together with
the plot change.  Two plots under one parcel therefore cannot both pass the
remaining-area check on a stale read.

Transaction boundary: public methods commit on success and roll back on
failure.  ``lock_parcel`` and ``apply_plot_transition`` run inside the
caller's unit of work and are what SalesService and CancellationService use.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from estate_engines import land_area
from estate_engines.land_area import AreaBalance
from estate_kernel.db.types import to_decimal
from estate_kernel.domain.approval import Actor
from estate_kernel.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    ValidationError,
)
from estate_kernel.invariants import EstateInvariant, ensure
from estate_kernel.logging_config import get_logger
from estate_kernel.services.unit_of_work import UnitOfWork
from estate_modules.base import ModuleService
from estate_modules.land.models import AreaUnit, LandParcel, ParcelSummary, Plot, PlotStatus
from estate_modules.land.orm import LandParcelModel, PlotModel
from estate_modules.land.workflows import PLOT_WORKFLOW

logger = get_logger("modules.land.service")

PARCEL_LOCK = "land_parcel"


class LandService(ModuleService):
    # =========================================================================
    # Helpers run inside the caller's unit of work
    # =========================================================================

    def lock_parcel(self, uow: UnitOfWork, parcel_id: UUID) -> LandParcelModel:
        uow.lock(PARCEL_LOCK, parcel_id)
        return self._get_for_update(LandParcelModel, parcel_id, "LandParcel")

    def _write_balance(self, parcel: LandParcelModel, balance: AreaBalance, actor: Actor) -> None:
        ensure(
            balance.is_consistent(),
            EstateInvariant.PARCEL_AREA_BALANCE,
            f"Parcel {parcel.parcel_code} area no longer balances",
            parcel=parcel.parcel_code,
        )
        parcel.apply_balance(balance)
        parcel.updated_by_id = actor.actor_id

    def apply_plot_transition(
        self,
        parcel: LandParcelModel,
        plot: PlotModel,
        target: PlotStatus,
        actor: Actor,
        client_id: UUID | None = None,
        on: date | None = None,
    ) -> PlotModel:
        """
        Move ``plot`` to ``target`` and apply the matching area move.

        The caller must hold the parcel lock (``lock_parcel``).

        Raises:
            InvalidStateTransitionError: move not in the plot lifecycle.
            ValidationError: selling without a client.
        """
        current = PlotStatus(plot.status)
        transition = PLOT_WORKFLOW.require(current, target)
        today = on or self._clock.today()

        balance = parcel.balance()
        if target == PlotStatus.SOLD:
            if client_id is None:
                raise ValidationError(
                    f"Guard {transition.guard.name} failed: {transition.guard.description}",
                    field="client_id",
                )
            balance = land_area.sell(balance, plot.area)
            plot.client_id = client_id
            plot.sale_date = today
        if current == PlotStatus.SOLD:
            balance = land_area.revert_sale(balance, plot.area)
            plot.client_id = None
            plot.sale_date = None

        if target == PlotStatus.RESERVED:
            plot.reservation_date = today
        elif target == PlotStatus.AVAILABLE:
            plot.reservation_date = None

        plot.status = target.value
        plot.updated_by_id = actor.actor_id
        self._write_balance(parcel, balance, actor)
        self._session.flush()

        ensure(
            (plot.status == PlotStatus.SOLD.value)
            == (plot.client_id is not None and plot.sale_date is not None),
            EstateInvariant.PLOT_OWNERSHIP,
            f"Plot {plot.plot_number} owner fields disagree with status {plot.status}",
            plot=plot.plot_number,
        )
        logger.info(
            "plot_status_changed",
            extra={
                "plot_number": plot.plot_number,
                "parcel_code": parcel.parcel_code,
                "from_status": current.value,
                "to_status": target.value,
                "action": transition.action,
                "remaining_area": str(balance.remaining),
            },
        )
        return plot

    # =========================================================================
    # Parcels
    # =========================================================================

    def register_parcel(
        self,
        actor: Actor,
        parcel_code: str,
        project_name: str,
        total_area: Decimal | int | str,
        unit: AreaUnit = AreaUnit.DECIMAL,
        location: str | None = None,
    ) -> LandParcel:
        code = (parcel_code or "").strip().upper()
        if not code:
            raise ValidationError("Parcel code is required", field="parcel_code")
        if not (project_name or "").strip():
            raise ValidationError("Project name is required", field="project_name")
        total = to_decimal(total_area, "total_area")
        if total <= 0:
            raise ValidationError("Total area must be positive", field="total_area")

        with self._uow("register_parcel", actor) as uow:
            exists = self._session.scalar(
                select(func.count()).select_from(LandParcelModel)
                .where(LandParcelModel.parcel_code == code)
            )
            if exists:
                raise ConflictError(f"Parcel {code} already exists", parcel_code=code)
            parcel = LandParcelModel(
                parcel_code=code,
                project_name=project_name.strip(),
                location=location,
                unit=unit.value,
                total_area=total,
                created_by_id=actor.actor_id,
            )
            self._session.add(parcel)
            self._session.flush()
            self._audit(uow, actor, "parcel_registered", "LandParcel", parcel.id,
                        after={"parcel_code": code, "total_area": str(total)})
            logger.info("parcel_registered", extra={"parcel_code": code, "total_area": str(total)})
            return parcel.to_dto()

    def get_parcel(self, parcel_id: UUID) -> LandParcel:
        return self._get(LandParcelModel, parcel_id, "LandParcel").to_dto()

    def update_parcel_total(
        self, actor: Actor, parcel_id: UUID, total_area: Decimal | int | str,
    ) -> LandParcel:
        total = to_decimal(total_area, "total_area")
        with self._uow("update_parcel_total", actor) as uow:
            parcel = self.lock_parcel(uow, parcel_id)
            before = str(parcel.total_area)
            self._write_balance(parcel, land_area.resize_total(parcel.balance(), total), actor)
            self._session.flush()
            self._audit(uow, actor, "parcel_total_changed", "LandParcel", parcel.id,
                        before={"total_area": before}, after={"total_area": str(total)})
            return parcel.to_dto()

    def deactivate_parcel(self, actor: Actor, parcel_id: UUID) -> LandParcel:
        """Soft-deactivate.  Refused while any plot is Reserved or Sold."""
        with self._uow("deactivate_parcel", actor) as uow:
            parcel = self.lock_parcel(uow, parcel_id)
            committed = self._session.scalar(
                select(func.count()).select_from(PlotModel).where(
                    PlotModel.parcel_id == parcel.id,
                    PlotModel.is_deleted.is_(False),
                    PlotModel.status.in_([PlotStatus.SOLD.value, PlotStatus.RESERVED.value]),
                )
            )
            if committed:
                raise InvalidStateTransitionError(
                    "LandParcel", "active", "inactive",
                    f"{committed} plot(s) are reserved or sold",
                )
            parcel.is_active = False
            parcel.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "parcel_deactivated", "LandParcel", parcel.id)
            return parcel.to_dto()

    def parcel_summary(self, parcel_id: UUID) -> ParcelSummary:
        parcel = self._get(LandParcelModel, parcel_id, "LandParcel")
        statuses = self._session.scalars(
            select(PlotModel.status).where(
                PlotModel.parcel_id == parcel_id, PlotModel.is_deleted.is_(False),
            )
        )
        counts = Counter(PlotStatus(s) for s in statuses)
        return ParcelSummary(
            parcel=parcel.to_dto(),
            plot_counts={status: counts.get(status, 0) for status in PlotStatus},
        )

    # =========================================================================
    # Plots
    # =========================================================================

    def create_plot(
        self,
        actor: Actor,
        parcel_id: UUID,
        plot_number: str,
        area: Decimal | int | str,
        price: Decimal | int | str | None = None,
    ) -> Plot:
        number = (plot_number or "").strip()
        if not number:
            raise ValidationError("Plot number is required", field="plot_number")
        plot_area = to_decimal(area, "area")
        plot_price = to_decimal(price, "price") if price is not None else None
        if plot_price is not None and plot_price < 0:
            raise ValidationError("Price cannot be negative", field="price")

        with self._uow("create_plot", actor) as uow:
            parcel = self.lock_parcel(uow, parcel_id)
            if not parcel.is_active:
                raise InvalidStateTransitionError(
                    "LandParcel", "inactive", "allocated", "parcel is deactivated",
                )
            duplicate = self._session.scalar(
                select(func.count()).select_from(PlotModel).where(
                    PlotModel.parcel_id == parcel.id,
                    PlotModel.plot_number == number,
                )
            )
            if duplicate:
                raise ConflictError(
                    f"Plot {number} already exists in parcel {parcel.parcel_code}",
                    plot_number=number,
                )
            self._write_balance(parcel, land_area.allocate(parcel.balance(), plot_area), actor)
            plot = PlotModel(
                parcel_id=parcel.id,
                plot_number=number,
                area=plot_area,
                price=plot_price,
                status=PlotStatus.AVAILABLE.value,
                created_by_id=actor.actor_id,
            )
            self._session.add(plot)
            self._session.flush()
            self._audit(uow, actor, "plot_created", "Plot", plot.id,
                        after={"plot_number": number, "area": str(plot_area)})
            logger.info(
                "plot_allocated",
                extra={
                    "parcel_code": parcel.parcel_code,
                    "plot_number": number,
                    "area": str(plot_area),
                    "remaining_area": str(parcel.balance().remaining),
                },
            )
            return plot.to_dto()

    def get_plot(self, plot_id: UUID) -> Plot:
        return self._get(PlotModel, plot_id, "Plot").to_dto()

    def list_plots(self, parcel_id: UUID, status: PlotStatus | None = None) -> list[Plot]:
        stmt = select(PlotModel).where(
            PlotModel.parcel_id == parcel_id, PlotModel.is_deleted.is_(False),
        )
        if status is not None:
            stmt = stmt.where(PlotModel.status == status.value)
        return [p.to_dto() for p in self._session.scalars(stmt.order_by(PlotModel.plot_number))]

    def _locked_plot(self, uow: UnitOfWork, plot_id: UUID) -> tuple[LandParcelModel, PlotModel]:
        plot = self._get(PlotModel, plot_id, "Plot")
        parcel = self.lock_parcel(uow, plot.parcel_id)
        plot = self._get_for_update(PlotModel, plot_id, "Plot")
        return parcel, plot

    def resize_plot(self, actor: Actor, plot_id: UUID, area: Decimal | int | str) -> Plot:
        new_area = to_decimal(area, "area")
        with self._uow("resize_plot", actor) as uow:
            parcel, plot = self._locked_plot(uow, plot_id)
            if plot.status == PlotStatus.SOLD.value:
                raise InvalidStateTransitionError(
                    "Plot", plot.status, "resized", "sold plots keep their area",
                )
            balance = land_area.adjust_allocation(parcel.balance(), plot.area, new_area)
            old_area = plot.area
            self._write_balance(parcel, balance, actor)
            plot.area = new_area
            plot.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "plot_resized", "Plot", plot.id,
                        before={"area": str(old_area)}, after={"area": str(new_area)})
            return plot.to_dto()

    def delete_plot(self, actor: Actor, plot_id: UUID) -> None:
        """Soft-delete an unsold plot and release its area."""
        with self._uow("delete_plot", actor) as uow:
            parcel, plot = self._locked_plot(uow, plot_id)
            if plot.status == PlotStatus.SOLD.value:
                raise InvalidStateTransitionError(
                    "Plot", plot.status, "deleted", "a sold plot cannot be deleted",
                )
            self._write_balance(parcel, land_area.release(parcel.balance(), plot.area), actor)
            plot.is_deleted = True
            plot.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "plot_deleted", "Plot", plot.id)
            logger.info(
                "plot_released",
                extra={"plot_number": plot.plot_number, "area": str(plot.area)},
            )

    def change_plot_status(
        self,
        actor: Actor,
        plot_id: UUID,
        target: PlotStatus,
        client_id: UUID | None = None,
    ) -> Plot:
        with self._uow("change_plot_status", actor) as uow:
            parcel, plot = self._locked_plot(uow, plot_id)
            before = plot.status
            if before == PlotStatus.SOLD.value and target != PlotStatus.SOLD:
                self._refuse_if_owned_by_sale(plot, target)
            self.apply_plot_transition(parcel, plot, target, actor, client_id=client_id)
            self._audit(uow, actor, "plot_status_changed", "Plot", plot.id,
                        before={"status": before}, after={"status": plot.status})
            return plot.to_dto()

    def _refuse_if_owned_by_sale(self, plot: PlotModel, target: PlotStatus) -> None:
        from estate_modules.sales.orm import SaleModel

        sale_number = self._session.scalar(
            select(SaleModel.sale_number).where(
                SaleModel.plot_id == plot.id,
                SaleModel.client_id == plot.client_id,
            )
        )
        if sale_number is not None:
            raise InvalidStateTransitionError(
                "Plot", plot.status, target.value,
                f"sale {sale_number} owns the plot; only its cancellation can release it",
            )

    def reserve_plot(self, actor: Actor, plot_id: UUID) -> Plot:
        return self.change_plot_status(actor, plot_id, PlotStatus.RESERVED)

    def block_plot(self, actor: Actor, plot_id: UUID) -> Plot:
        return self.change_plot_status(actor, plot_id, PlotStatus.BLOCKED)

    def make_available(self, actor: Actor, plot_id: UUID) -> Plot:
        return self.change_plot_status(actor, plot_id, PlotStatus.AVAILABLE)

    def mark_sold(
        self, actor: Actor, plot_id: UUID, client_id: UUID, sale_date: date | None = None,
    ) -> Plot:
        with self._uow("mark_plot_sold", actor) as uow:
            parcel, plot = self._locked_plot(uow, plot_id)
            before = plot.status
            self.apply_plot_transition(
                parcel, plot, PlotStatus.SOLD, actor, client_id=client_id, on=sale_date,
            )
            self._audit(uow, actor, "plot_sold", "Plot", plot.id,
                        before={"status": before},
                        after={"status": plot.status, "client_id": str(client_id)})
            return plot.to_dto()

    def revert_sold(self, actor: Actor, plot_id: UUID) -> Plot:
        """Sold -> Available; the area moves back from sold to allocated."""
        return self.change_plot_status(actor, plot_id, PlotStatus.AVAILABLE)
