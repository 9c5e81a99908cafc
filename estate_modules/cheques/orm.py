"""Cheque ORM model (``estate_modules.cheques.orm``)."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from estate_kernel.db.base import TrackedBase
from estate_modules.cheques.models import ChequeStatus, ChequeType


class ChequeModel(TrackedBase):
    __tablename__ = "estate_cheques"

    __table_args__ = (
        Index("idx_cheque_status_due", "status", "due_date"),
        Index("idx_cheque_client_status", "client_id", "status"),
        Index("idx_cheque_sale_status", "sale_id", "status"),
        Index("idx_cheque_number", "cheque_number"),
    )

    cheque_number: Mapped[str] = mapped_column(String(50))
    bank_name: Mapped[str] = mapped_column(String(100))
    branch_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_type: Mapped[str] = mapped_column(String(10), default=ChequeType.CURRENT.value)
    issue_date: Mapped[date]
    due_date: Mapped[date]
    amount: Mapped[Decimal]
    client_id: Mapped[UUID] = mapped_column(ForeignKey("estate_clients.id"))
    sale_id: Mapped[UUID | None] = mapped_column(ForeignKey("estate_sales.id"), nullable=True)
    receipt_id: Mapped[UUID | None] = mapped_column(ForeignKey("estate_receipts.id"), nullable=True)
    refund_line_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("estate_refund_lines.id"), nullable=True,
    )
    status: Mapped[str] = mapped_column(String(20), default=ChequeStatus.PENDING.value)
    cleared_date: Mapped[date | None] = mapped_column(nullable=True)
    cleared_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    bounce_date: Mapped[date | None] = mapped_column(nullable=True)
    bounce_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    bounced_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    cancelled_date: Mapped[date | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(default=False)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from estate_modules.cheques.models import Cheque

        return Cheque(
            id=self.id,
            cheque_number=self.cheque_number,
            bank_name=self.bank_name,
            branch_name=self.branch_name,
            cheque_type=ChequeType(self.cheque_type),
            issue_date=self.issue_date,
            due_date=self.due_date,
            amount=self.amount,
            client_id=self.client_id,
            sale_id=self.sale_id,
            receipt_id=self.receipt_id,
            refund_line_id=self.refund_line_id,
            status=ChequeStatus(self.status),
            cleared_date=self.cleared_date,
            bounce_date=self.bounce_date,
            bounce_reason=self.bounce_reason,
            cancelled_date=self.cancelled_date,
            cancel_reason=self.cancel_reason,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<ChequeModel {self.cheque_number} {self.status}>"
