"""
Approval domain types (``estate_kernel.domain.approval``).

Responsibility
--------------
The two-level approval state machine shared by receipts, refund lines and
expenses.  ``decide()`` is the single place that maps (status, action,
role) to the next status or rejects the move.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* Draft -> PendingLevel1 -> PendingLevel2 -> Approved; Rejected from either
  pending state; Rejected documents may be resubmitted.
* At a pending state only that level's roles may act; anyone else gets
  ForbiddenError and the document is left untouched.
* Approved and Rejected accept no approve/reject actions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from estate_kernel.exceptions import (
    ForbiddenError,
    InvalidStateTransitionError,
    ValidationError,
)


class Role(str, Enum):
    """Roles supplied by the authentication layer."""

    SALES = "SALES"
    ACCOUNT_MANAGER = "ACCOUNT_MANAGER"
    HOF = "HOF"
    ADMIN = "ADMIN"


class ApprovalStatus(str, Enum):
    DRAFT = "Draft"
    PENDING_LEVEL1 = "PendingLevel1"
    PENDING_LEVEL2 = "PendingLevel2"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ApprovalAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"


# Level at which each pending state is decided.
PENDING_LEVEL: dict[ApprovalStatus, int] = {
    ApprovalStatus.PENDING_LEVEL1: 1,
    ApprovalStatus.PENDING_LEVEL2: 2,
}

LEVEL_ROLES: dict[int, frozenset[Role]] = {
    1: frozenset({Role.ACCOUNT_MANAGER, Role.ADMIN}),
    2: frozenset({Role.HOF, Role.ADMIN}),
}

APPROVAL_TRANSITIONS: dict[tuple[ApprovalStatus, ApprovalAction], ApprovalStatus] = {
    (ApprovalStatus.DRAFT, ApprovalAction.SUBMIT): ApprovalStatus.PENDING_LEVEL1,
    (ApprovalStatus.REJECTED, ApprovalAction.SUBMIT): ApprovalStatus.PENDING_LEVEL1,
    (ApprovalStatus.PENDING_LEVEL1, ApprovalAction.APPROVE): ApprovalStatus.PENDING_LEVEL2,
    (ApprovalStatus.PENDING_LEVEL1, ApprovalAction.REJECT): ApprovalStatus.REJECTED,
    (ApprovalStatus.PENDING_LEVEL2, ApprovalAction.APPROVE): ApprovalStatus.APPROVED,
    (ApprovalStatus.PENDING_LEVEL2, ApprovalAction.REJECT): ApprovalStatus.REJECTED,
}

EDITABLE_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.DRAFT,
    ApprovalStatus.REJECTED,
})


@dataclass(frozen=True)
class Actor:
    """Authenticated identity acting on the engine."""

    actor_id: UUID
    role: Role


@dataclass(frozen=True)
class ApprovalDecision:
    """Outcome of ``decide()``. ``level`` is 0 for submission."""

    from_status: ApprovalStatus
    to_status: ApprovalStatus
    action: ApprovalAction
    level: int

    @property
    def reaches_approved(self) -> bool:
        return self.to_status == ApprovalStatus.APPROVED


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    """One immutable line of a document's approval history."""

    sequence: int
    actor_id: UUID
    actor_role: Role
    level: int
    action: ApprovalAction
    from_status: ApprovalStatus
    to_status: ApprovalStatus
    acted_at: datetime
    remarks: str | None = None


def roles_for_status(status: ApprovalStatus) -> frozenset[Role]:
    """Roles allowed to approve or reject a document in ``status``."""
    level = PENDING_LEVEL.get(status)
    if level is None:
        return frozenset()
    return LEVEL_ROLES[level]


def decide(
    status: ApprovalStatus,
    action: ApprovalAction,
    role: Role,
    remarks: str | None = None,
) -> ApprovalDecision:
    """
    Compute the next approval status.

    Raises:
        InvalidStateTransitionError: ``action`` is not legal from ``status``.
        ForbiddenError: ``role`` is not the assigned approver for ``status``.
        ValidationError: rejection without remarks.
    """
    target = APPROVAL_TRANSITIONS.get((status, action))
    if target is None:
        raise InvalidStateTransitionError(
            "ApprovalDocument", status.value, action.value
        )

    level = 0
    if action != ApprovalAction.SUBMIT:
        level = PENDING_LEVEL[status]
        if role not in LEVEL_ROLES[level]:
            raise ForbiddenError(role.value, action.value, status.value)
        if action == ApprovalAction.REJECT and not (remarks and remarks.strip()):
            raise ValidationError("Rejection requires remarks", field="remarks")

    return ApprovalDecision(
        from_status=status,
        to_status=target,
        action=action,
        level=level,
    )


def statuses_actionable_by(role: Role) -> frozenset[ApprovalStatus]:
    """Pending statuses ``role`` may approve or reject (its approval queue)."""
    return frozenset(
        status for status, level in PENDING_LEVEL.items() if role in LEVEL_ROLES[level]
    )
