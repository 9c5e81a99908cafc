"""
Approval persistence: the shared document columns and the history table.

``ApprovableMixin`` gives receipts, refund lines and expenses the same
shape (number, amount, approval status, posting flag).  Each model names
itself through ``document_type`` and lists, in ``mutable_after_approval``,
the columns that may still change once it is Approved.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from estate_kernel.db.base import Base
from estate_kernel.domain.approval import ApprovalStatus

# Audit metadata and the optimistic version move on every flush.
ALWAYS_MUTABLE: frozenset[str] = frozenset({
    "updated_at",
    "updated_by_id",
    "version",
    "posted_to_ledger",
    "ledger_posted_at",
})


class ApprovableMixin:
    document_type: ClassVar[str] = "document"
    mutable_after_approval: ClassVar[frozenset[str]] = frozenset()

    document_number: Mapped[str] = mapped_column(String(30), unique=True)
    amount: Mapped[Decimal] = mapped_column()
    approval_status: Mapped[str] = mapped_column(
        String(20), default=ApprovalStatus.DRAFT.value, index=True,
    )
    posted_to_ledger: Mapped[bool] = mapped_column(default=False)
    ledger_posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_deleted: Mapped[bool] = mapped_column(default=False)

    @property
    def status(self) -> ApprovalStatus:
        return ApprovalStatus(self.approval_status)


class ApprovalHistoryModel(Base):
    """Append-only approval trail. One row per transition."""

    __tablename__ = "estate_approval_history"

    __table_args__ = (
        UniqueConstraint("document_type", "document_id", "sequence", name="uq_approval_history_seq"),
        Index("idx_approval_history_document", "document_type", "document_id"),
    )

    document_type: Mapped[str] = mapped_column(String(30))
    document_id: Mapped[UUID]
    sequence: Mapped[int]
    actor_id: Mapped[UUID]
    actor_role: Mapped[str] = mapped_column(String(30))
    level: Mapped[int]
    action: Mapped[str] = mapped_column(String(20))
    from_status: Mapped[str] = mapped_column(String(20))
    to_status: Mapped[str] = mapped_column(String(20))
    acted_at: Mapped[datetime]
    remarks: Mapped[str | None] = mapped_column(String(1000), nullable=True)
