"""
LedgerService -- append-only double-entry posting.

Responsibility:
    Writes a validated LedgerPosting as LedgerEntry rows.  Each source
    document is posted at most once per transaction type: a repeated call
    returns the existing entries instead of writing a second pair.

Architecture position:
    Kernel > Services.  Called by module services inside their unit of
    work (sale creation, approval hooks, refund payment).  Never commits.

Invariants enforced:
    - Lines are re-validated (one side each, debits == credits) before any
      insert, whatever built them.
    - Idempotence per (reference_id, transaction_type): existence check
      first, unique (reference_id, transaction_type, line_no) as backstop.
    - No update or delete paths exist here; ORM listeners reject them
      elsewhere.

Failure modes:
    - InvalidLedgerLineError / UnbalancedEntryError before any write.
    - IntegrityError on a concurrent duplicate; the unit of work reports it
      as ConflictError and the caller's retry then finds the posting.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from estate_kernel.domain.clock import Clock
from estate_kernel.domain.ledger import LedgerPosting, TransactionType, validate_lines
from estate_kernel.logging_config import get_logger
from estate_kernel.models.ledger import LedgerEntryModel

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class PostingResult:
    posting_id: UUID
    entry_ids: tuple[UUID, ...]
    created: bool


class LedgerService:
    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    def existing_entries(
        self, reference_id: UUID, transaction_type: TransactionType,
    ) -> list[LedgerEntryModel]:
        return list(
            self._session.scalars(
                select(LedgerEntryModel)
                .where(
                    LedgerEntryModel.reference_id == reference_id,
                    LedgerEntryModel.transaction_type == transaction_type.value,
                )
                .order_by(LedgerEntryModel.line_no)
            )
        )

    def post(self, posting: LedgerPosting, actor_id: UUID) -> PostingResult:
        """
        Write ``posting`` unless it already exists.

        Returns:
            PostingResult with ``created=False`` when an earlier call already
            wrote this reference/transaction type.
        """
        validate_lines(str(posting.reference_id), posting.lines)

        existing = self.existing_entries(posting.reference_id, posting.transaction_type)
        if existing:
            logger.info(
                "ledger_posting_already_exists",
                extra={
                    "reference_id": str(posting.reference_id),
                    "transaction_type": posting.transaction_type.value,
                },
            )
            return PostingResult(
                posting_id=existing[0].posting_id,
                entry_ids=tuple(e.id for e in existing),
                created=False,
            )

        posting_id = uuid4()
        entries = [
            LedgerEntryModel(
                posting_id=posting_id,
                line_no=line_no,
                transaction_date=posting.transaction_date,
                account_name=line.account.name,
                account_type=line.account.account_type.value,
                debit=line.debit,
                credit=line.credit,
                transaction_type=posting.transaction_type.value,
                reference_type=posting.reference_type,
                reference_id=posting.reference_id,
                reference_number=posting.reference_number,
                client_id=posting.client_id,
                description=posting.description,
                created_by_id=actor_id,
            )
            for line_no, line in enumerate(posting.lines, start=1)
        ]
        self._session.add_all(entries)
        self._session.flush()

        logger.info(
            "ledger_posting_created",
            extra={
                "posting_id": str(posting_id),
                "reference_id": str(posting.reference_id),
                "reference_number": posting.reference_number,
                "transaction_type": posting.transaction_type.value,
                "amount": str(posting.total_debits),
                "line_count": len(entries),
            },
        )
        return PostingResult(
            posting_id=posting_id,
            entry_ids=tuple(e.id for e in entries),
            created=True,
        )
