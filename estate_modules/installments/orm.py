"""Installment ORM model (``estate_modules.installments.orm``)."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from estate_engines.installment_schedule import InstallmentStatus
from estate_kernel.db.base import TrackedBase


class InstallmentLineModel(TrackedBase):
    __tablename__ = "estate_installments"

    __table_args__ = (
        UniqueConstraint("sale_id", "sequence", name="uq_installment_sale_seq"),
        Index("idx_installment_client", "client_id"),
        Index("idx_installment_due", "status", "due_date"),
    )

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("estate_sales.id"))
    client_id: Mapped[UUID] = mapped_column(ForeignKey("estate_clients.id"))
    sequence: Mapped[int]
    frequency: Mapped[str] = mapped_column(String(20))
    due_date: Mapped[date]
    amount: Mapped[Decimal]
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), default=InstallmentStatus.PENDING.value)
    paid_date: Mapped[date | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def outstanding(self) -> Decimal:
        return self.amount - self.paid_amount

    def to_dto(self):
        from estate_modules.installments.models import InstallmentLine

        return InstallmentLine(
            id=self.id,
            sale_id=self.sale_id,
            client_id=self.client_id,
            sequence=self.sequence,
            due_date=self.due_date,
            amount=self.amount,
            paid_amount=self.paid_amount,
            status=InstallmentStatus(self.status),
            paid_date=self.paid_date,
        )

    def __repr__(self) -> str:
        return f"<InstallmentLineModel #{self.sequence} {self.status}>"
