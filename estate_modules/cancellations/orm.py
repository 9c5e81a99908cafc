"""
Cancellation ORM models (``estate_modules.cancellations.orm``).

A refund line stays payable after approval, so its payment columns are
listed in ``mutable_after_approval``; everything else on an Approved line
is frozen by the document listener.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from estate_engines.settlement import CancellationStatus
from estate_kernel.db.base import TrackedBase
from estate_kernel.domain.approval import ApprovalStatus
from estate_kernel.domain.ledger import PaymentMethod
from estate_kernel.models.approval import ApprovableMixin


class CancellationModel(TrackedBase):
    __tablename__ = "estate_cancellations"

    __table_args__ = (
        UniqueConstraint("sale_id", name="uq_cancellation_sale"),
        Index("idx_cancellation_status", "status"),
    )

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("estate_sales.id"))
    client_id: Mapped[UUID] = mapped_column(ForeignKey("estate_clients.id"))
    reason: Mapped[str] = mapped_column(String(1000))
    cancellation_date: Mapped[date]
    total_paid: Mapped[Decimal]
    office_charge_percent: Mapped[Decimal]
    office_charge_amount: Mapped[Decimal]
    other_deductions: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    refundable_amount: Mapped[Decimal]
    refunded_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    remaining_refund: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(20), default=CancellationStatus.PENDING.value)
    decided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    refund_lines: Mapped[list["RefundLineModel"]] = relationship(
        back_populates="cancellation",
        order_by="RefundLineModel.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from estate_modules.cancellations.models import Cancellation

        return Cancellation(
            id=self.id,
            sale_id=self.sale_id,
            client_id=self.client_id,
            reason=self.reason,
            cancellation_date=self.cancellation_date,
            total_paid=self.total_paid,
            office_charge_percent=self.office_charge_percent,
            office_charge_amount=self.office_charge_amount,
            other_deductions=self.other_deductions,
            refundable_amount=self.refundable_amount,
            refunded_amount=self.refunded_amount,
            remaining_refund=self.remaining_refund,
            status=CancellationStatus(self.status),
            rejection_reason=self.rejection_reason,
        )


class RefundLineModel(ApprovableMixin, TrackedBase):
    __tablename__ = "estate_refund_lines"

    __table_args__ = (
        UniqueConstraint("cancellation_id", "sequence", name="uq_refund_line_seq"),
        Index("idx_refund_due", "payment_status", "due_date"),
    )

    document_type = "refund"
    mutable_after_approval = frozenset({
        "payment_status",
        "payment_method",
        "bank_name",
        "cheque_number",
        "paid_date",
        "paid_by_id",
    })

    cancellation_id: Mapped[UUID] = mapped_column(ForeignKey("estate_cancellations.id"))
    client_id: Mapped[UUID] = mapped_column(ForeignKey("estate_clients.id"))
    sequence: Mapped[int]
    due_date: Mapped[date]
    payment_status: Mapped[str] = mapped_column(String(20), default="Pending")
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    paid_date: Mapped[date | None] = mapped_column(nullable=True)
    paid_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    cancellation: Mapped[CancellationModel] = relationship(back_populates="refund_lines")

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from estate_modules.cancellations.models import RefundLine, RefundPaymentStatus

        return RefundLine(
            id=self.id,
            cancellation_id=self.cancellation_id,
            refund_number=self.document_number,
            sequence=self.sequence,
            due_date=self.due_date,
            amount=self.amount,
            approval_status=ApprovalStatus(self.approval_status),
            payment_status=RefundPaymentStatus(self.payment_status),
            payment_method=PaymentMethod(self.payment_method) if self.payment_method else None,
            paid_date=self.paid_date,
            posted_to_ledger=self.posted_to_ledger,
        )
