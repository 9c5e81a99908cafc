"""Receipt ORM model (``estate_modules.receipts.orm``)."""

from datetime import date
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from estate_engines.stage_account import StageName
from estate_kernel.db.base import TrackedBase
from estate_kernel.domain.approval import ApprovalStatus
from estate_kernel.domain.ledger import PaymentMethod
from estate_kernel.models.approval import ApprovableMixin


class ReceiptModel(ApprovableMixin, TrackedBase):
    __tablename__ = "estate_receipts"

    __table_args__ = (
        Index("idx_receipt_sale", "sale_id"),
        Index("idx_receipt_date", "receipt_date"),
    )

    document_type = "receipt"

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("estate_sales.id"))
    client_id: Mapped[UUID] = mapped_column(ForeignKey("estate_clients.id"))
    stage_name: Mapped[str] = mapped_column(String(20))
    installment_sequence: Mapped[int | None] = mapped_column(nullable=True)
    payment_method: Mapped[str] = mapped_column(String(20))
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cheque_date: Mapped[date | None] = mapped_column(nullable=True)
    receipt_date: Mapped[date]
    remarks: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from estate_modules.receipts.models import Receipt

        return Receipt(
            id=self.id,
            receipt_number=self.document_number,
            sale_id=self.sale_id,
            client_id=self.client_id,
            stage_name=StageName(self.stage_name),
            installment_sequence=self.installment_sequence,
            amount=self.amount,
            payment_method=PaymentMethod(self.payment_method),
            bank_name=self.bank_name,
            cheque_number=self.cheque_number,
            cheque_date=self.cheque_date,
            receipt_date=self.receipt_date,
            approval_status=ApprovalStatus(self.approval_status),
            posted_to_ledger=self.posted_to_ledger,
            remarks=self.remarks,
        )

    def __repr__(self) -> str:
        return f"<ReceiptModel {self.document_number} {self.approval_status}>"
