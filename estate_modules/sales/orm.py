"""
Sales ORM models (``estate_modules.sales.orm``).

``SaleModel.paid_amount`` / ``due_amount`` and each stage's status are
stored for reporting but always rewritten by the full recompute in
SalesService; nothing increments them directly.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from estate_engines.stage_account import StageName, StageState, StageStatus
from estate_kernel.db.base import TrackedBase


class ClientModel(TrackedBase):
    __tablename__ = "estate_clients"

    __table_args__ = (Index("idx_client_phone", "phone"),)

    name: Mapped[str] = mapped_column(String(200))
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)

    def to_dto(self):
        from estate_modules.sales.models import Client

        return Client(
            id=self.id,
            name=self.name,
            phone=self.phone,
            email=self.email,
            address=self.address,
        )


class SaleModel(TrackedBase):
    __tablename__ = "estate_sales"

    __table_args__ = (
        UniqueConstraint("sale_number", name="uq_sale_number"),
        Index("idx_sale_client", "client_id"),
        Index("idx_sale_status", "status"),
    )

    sale_number: Mapped[str] = mapped_column(String(30))
    client_id: Mapped[UUID] = mapped_column(ForeignKey("estate_clients.id"))
    plot_id: Mapped[UUID] = mapped_column(ForeignKey("estate_plots.id"))
    total_price: Mapped[Decimal]
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    due_amount: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(20), default="Active")
    sale_date: Mapped[date]
    posted_to_ledger: Mapped[bool] = mapped_column(default=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    stages: Mapped[list["SaleStageModel"]] = relationship(
        back_populates="sale",
        order_by="SaleStageModel.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def stage(self, name: StageName) -> "SaleStageModel | None":
        for stage in self.stages:
            if stage.name == name.value:
                return stage
        return None

    def to_dto(self):
        from estate_modules.sales.models import Sale, SaleStatus

        return Sale(
            id=self.id,
            sale_number=self.sale_number,
            client_id=self.client_id,
            plot_id=self.plot_id,
            total_price=self.total_price,
            paid_amount=self.paid_amount,
            due_amount=self.due_amount,
            status=SaleStatus(self.status),
            sale_date=self.sale_date,
            stages=tuple(s.to_dto() for s in self.stages),
        )

    def __repr__(self) -> str:
        return f"<SaleModel {self.sale_number} {self.status}>"


class SaleStageModel(TrackedBase):
    __tablename__ = "estate_sale_stages"

    __table_args__ = (
        UniqueConstraint("sale_id", "name", name="uq_sale_stage_name"),
    )

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("estate_sales.id"))
    position: Mapped[int]
    name: Mapped[str] = mapped_column(String(20))
    planned_amount: Mapped[Decimal]
    received_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    due_amount: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(20), default="Pending")
    expected_date: Mapped[date | None] = mapped_column(nullable=True)
    completed_date: Mapped[date | None] = mapped_column(nullable=True)

    sale: Mapped[SaleModel] = relationship(back_populates="stages")

    def to_state(self) -> StageState:
        return StageState(
            name=StageName(self.name),
            planned=self.planned_amount,
            received=self.received_amount,
            expected_date=self.expected_date,
            completed_date=self.completed_date,
            status=StageStatus(self.status),
        )

    def apply_state(self, state: StageState) -> None:
        self.received_amount = state.received
        self.due_amount = state.due
        self.status = state.status.value
        self.completed_date = state.completed_date

    def to_dto(self):
        from estate_modules.sales.models import Stage

        return Stage(
            name=StageName(self.name),
            planned_amount=self.planned_amount,
            received_amount=self.received_amount,
            due_amount=self.due_amount,
            status=StageStatus(self.status),
            expected_date=self.expected_date,
            completed_date=self.completed_date,
        )
