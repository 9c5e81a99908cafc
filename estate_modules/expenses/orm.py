"""Expense ORM model (``estate_modules.expenses.orm``)."""

from datetime import date

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from estate_kernel.db.base import TrackedBase
from estate_kernel.domain.approval import ApprovalStatus
from estate_kernel.domain.ledger import PaymentMethod
from estate_kernel.models.approval import ApprovableMixin


class ExpenseModel(ApprovableMixin, TrackedBase):
    __tablename__ = "estate_expenses"

    __table_args__ = (
        Index("idx_expense_category", "category"),
        Index("idx_expense_date", "expense_date"),
    )

    document_type = "expense"

    category: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    payee: Mapped[str | None] = mapped_column(String(200), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(20))
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    expense_date: Mapped[date]
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from estate_modules.expenses.models import Expense

        return Expense(
            id=self.id,
            expense_number=self.document_number,
            category=self.category,
            description=self.description,
            payee=self.payee,
            amount=self.amount,
            payment_method=PaymentMethod(self.payment_method),
            bank_name=self.bank_name,
            cheque_number=self.cheque_number,
            expense_date=self.expense_date,
            approval_status=ApprovalStatus(self.approval_status),
            posted_to_ledger=self.posted_to_ledger,
        )
