"""
ApprovalService -- applies the two-level approval machine to documents.

Responsibility:
    Moves an approvable document (receipt, refund line, expense) through
    Draft -> PendingLevel1 -> PendingLevel2 -> Approved / Rejected, appends
    one history row per move, and fires the document's posting hook
    exactly once when it reaches Approved.

Architecture position:
    Kernel > Services.  Module services call it inside a unit of work that
    already holds the document lock, so the approval and its posting
    commit together or not at all.

Invariants enforced:
    - Transition legality and role checks live in ``domain.approval.decide``;
      a rejected attempt leaves the document and history untouched.
    - ``posted_to_ledger`` flips to True at most once and only on an
      Approved document; later calls are no-ops.
    - Only Draft and Rejected documents may be edited or deleted.

Failure modes:
    - ForbiddenError, InvalidStateTransitionError, ValidationError from
      ``decide``.
    - Whatever the posting hook raises; the unit of work rolls back the
      approval with it.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from estate_kernel.domain.approval import (
    EDITABLE_STATUSES,
    Actor,
    ApprovalAction,
    ApprovalDecision,
    ApprovalHistoryEntry,
    ApprovalStatus,
    Role,
    decide,
    statuses_actionable_by,
)
from estate_kernel.domain.clock import Clock
from estate_kernel.exceptions import InvalidStateTransitionError
from estate_kernel.logging_config import get_logger
from estate_kernel.models.approval import ApprovableMixin, ApprovalHistoryModel

logger = get_logger("services.approval")

PostingHook = Callable[[ApprovableMixin], None]


class ApprovalService:
    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    def history(self, document: ApprovableMixin) -> list[ApprovalHistoryEntry]:
        rows = self._session.scalars(
            select(ApprovalHistoryModel)
            .where(
                ApprovalHistoryModel.document_type == document.document_type,
                ApprovalHistoryModel.document_id == document.id,
            )
            .order_by(ApprovalHistoryModel.sequence)
        )
        return [
            ApprovalHistoryEntry(
                sequence=row.sequence,
                actor_id=row.actor_id,
                actor_role=Role(row.actor_role),
                level=row.level,
                action=ApprovalAction(row.action),
                from_status=ApprovalStatus(row.from_status),
                to_status=ApprovalStatus(row.to_status),
                acted_at=row.acted_at,
                remarks=row.remarks,
            )
            for row in rows
        ]

    def _next_history_sequence(self, document: ApprovableMixin) -> int:
        current = self._session.scalar(
            select(func.max(ApprovalHistoryModel.sequence)).where(
                ApprovalHistoryModel.document_type == document.document_type,
                ApprovalHistoryModel.document_id == document.id,
            )
        )
        return (current or 0) + 1

    def transition(
        self,
        document: ApprovableMixin,
        action: ApprovalAction,
        actor: Actor,
        remarks: str | None = None,
        on_approved: PostingHook | None = None,
    ) -> ApprovalDecision:
        if document.is_deleted:
            raise InvalidStateTransitionError(
                document.document_type, document.approval_status, action.value,
                "document is deleted",
            )
        decision = decide(document.status, action, actor.role, remarks)

        document.approval_status = decision.to_status.value
        document.updated_by_id = actor.actor_id
        self._session.add(
            ApprovalHistoryModel(
                document_type=document.document_type,
                document_id=document.id,
                sequence=self._next_history_sequence(document),
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                level=decision.level,
                action=action.value,
                from_status=decision.from_status.value,
                to_status=decision.to_status.value,
                acted_at=self._clock.now(),
                remarks=remarks,
            )
        )
        self._session.flush()

        logger.info(
            "approval_transition",
            extra={
                "document_type": document.document_type,
                "document_number": document.document_number,
                "action": action.value,
                "from_status": decision.from_status.value,
                "to_status": decision.to_status.value,
                "level": decision.level,
                "actor_role": actor.role.value,
            },
        )

        if decision.reaches_approved and on_approved is not None:
            self.post_once(document, on_approved)
        return decision

    def post_once(self, document: ApprovableMixin, hook: PostingHook) -> bool:
        """Run ``hook`` unless the document is already posted. True if it ran."""
        if document.status != ApprovalStatus.APPROVED:
            raise InvalidStateTransitionError(
                document.document_type, document.approval_status, "posted",
                "only approved documents are posted",
            )
        if document.posted_to_ledger:
            logger.info(
                "approval_posting_skipped",
                extra={
                    "document_type": document.document_type,
                    "document_number": document.document_number,
                },
            )
            return False
        hook(document)
        document.posted_to_ledger = True
        document.ledger_posted_at = self._clock.now()
        self._session.flush()
        return True

    @staticmethod
    def ensure_editable(document: ApprovableMixin, operation: str = "edited") -> None:
        if document.is_deleted or document.status not in EDITABLE_STATUSES:
            raise InvalidStateTransitionError(
                document.document_type, document.approval_status, operation,
                "only Draft or Rejected documents can change",
            )

    @staticmethod
    def ensure_deletable(document: ApprovableMixin) -> None:
        ApprovalService.ensure_editable(document, "deleted")

    def submit(self, document: ApprovableMixin, actor: Actor) -> ApprovalDecision:
        return self.transition(document, ApprovalAction.SUBMIT, actor)

    def approve(
        self,
        document: ApprovableMixin,
        actor: Actor,
        on_approved: PostingHook | None = None,
        remarks: str | None = None,
    ) -> ApprovalDecision:
        return self.transition(document, ApprovalAction.APPROVE, actor, remarks, on_approved)

    def reject(self, document: ApprovableMixin, actor: Actor, remarks: str | None) -> ApprovalDecision:
        return self.transition(document, ApprovalAction.REJECT, actor, remarks)

    def approval_queue(self, model: type[ApprovableMixin], role: Role) -> list:
        """Live documents of ``model`` the role can act on, oldest number first."""
        statuses = [status.value for status in statuses_actionable_by(role)]
        if not statuses:
            return []
        return list(
            self._session.scalars(
                select(model)
                .where(model.approval_status.in_(statuses), model.is_deleted.is_(False))
                .order_by(model.document_number)
            )
        )
