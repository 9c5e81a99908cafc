"""
LedgerEntryModel -- one side of a double-entry posting.

Append-only.  Rows are inserted by LedgerService in balanced sets and are
never updated or deleted (ORM listeners in db/immutability.py).  The
unique (reference_id, transaction_type, line_no) key makes a second
posting of the same document collide instead of duplicating.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from estate_kernel.db.base import TrackedBase


class LedgerEntryModel(TrackedBase):
    __tablename__ = "estate_ledger_entries"

    __table_args__ = (
        UniqueConstraint(
            "reference_id", "transaction_type", "line_no",
            name="uq_ledger_reference_line",
        ),
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_ledger_one_side",
        ),
        Index("idx_ledger_account_date", "account_name", "transaction_date"),
        Index("idx_ledger_reference", "reference_id"),
    )

    posting_id: Mapped[UUID]
    line_no: Mapped[int]
    transaction_date: Mapped[date]
    account_name: Mapped[str] = mapped_column(String(100))
    account_type: Mapped[str] = mapped_column(String(20))
    debit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    transaction_type: Mapped[str] = mapped_column(String(30))
    reference_type: Mapped[str] = mapped_column(String(30))
    reference_id: Mapped[UUID]
    reference_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    client_id: Mapped[UUID | None] = mapped_column(nullable=True)
    description: Mapped[str] = mapped_column(String(500))

    def __repr__(self) -> str:
        side = f"Dr {self.debit}" if self.debit else f"Cr {self.credit}"
        return f"<LedgerEntry {self.reference_number or self.reference_id} {self.account_name} {side}>"
