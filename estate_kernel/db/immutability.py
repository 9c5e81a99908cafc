"""
ORM-level immutability enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
any SQL reaches the database; the listeners here reject writes that would
rewrite financial history:

    Entity                    When immutable
    ------------------------  -----------------------------------------------
    LedgerEntryModel          always (append-only)
    ApprovalHistoryModel      always (append-only)
    Approvable documents      once Approved, except audit metadata, the
                              posting flag and ``mutable_after_approval``

Raising ImmutabilityViolationError aborts the flush; the unit of work
rolls the whole operation back.
"""

from sqlalchemy import event, inspect

from estate_kernel.exceptions import ImmutabilityViolationError
from estate_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: object, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={"entity_type": entity_type, "entity_id": str(entity_id), "reason": reason},
    )
    return ImmutabilityViolationError(entity_type, str(entity_id), reason)


def _reject_ledger_update(mapper, connection, target):
    raise _blocked("LedgerEntry", target.id, "ledger entries are append-only")


def _reject_ledger_delete(mapper, connection, target):
    raise _blocked("LedgerEntry", target.id, "ledger entries cannot be deleted")


def _reject_history_update(mapper, connection, target):
    raise _blocked("ApprovalHistory", target.id, "approval history is append-only")


def _reject_history_delete(mapper, connection, target):
    raise _blocked("ApprovalHistory", target.id, "approval history cannot be deleted")


def _status_before_flush(target) -> str:
    history = inspect(target).attrs.approval_status.history
    if history.deleted:
        return history.deleted[0]
    return target.approval_status


def _check_approved_document_update(mapper, connection, target):
    from estate_kernel.domain.approval import ApprovalStatus
    from estate_kernel.models.approval import ALWAYS_MUTABLE

    if _status_before_flush(target) != ApprovalStatus.APPROVED.value:
        return
    allowed = ALWAYS_MUTABLE | target.mutable_after_approval
    state = inspect(target)
    changed = [
        attr.key
        for attr in state.attrs
        if attr.key not in allowed and attr.history.has_changes()
    ]
    if changed:
        raise _blocked(
            target.document_type,
            target.id,
            f"approved document fields cannot change: {', '.join(sorted(changed))}",
        )


def _check_approved_document_delete(mapper, connection, target):
    from estate_kernel.domain.approval import ApprovalStatus

    if target.approval_status == ApprovalStatus.APPROVED.value:
        raise _blocked(target.document_type, target.id, "approved documents cannot be deleted")


_LISTENERS = (
    ("ledger", "before_update", _reject_ledger_update),
    ("ledger", "before_delete", _reject_ledger_delete),
    ("history", "before_update", _reject_history_update),
    ("history", "before_delete", _reject_history_delete),
    ("document", "before_update", _check_approved_document_update),
    ("document", "before_delete", _check_approved_document_delete),
)


def _targets():
    from estate_kernel.models.approval import ApprovableMixin, ApprovalHistoryModel
    from estate_kernel.models.ledger import LedgerEntryModel

    return {
        "ledger": LedgerEntryModel,
        "history": ApprovalHistoryModel,
        "document": ApprovableMixin,
    }


_registered = False


def register_immutability_listeners() -> None:
    """Install the listeners (idempotent)."""
    global _registered
    if _registered:
        return
    targets = _targets()
    for target_key, event_name, listener in _LISTENERS:
        event.listen(targets[target_key], event_name, listener, propagate=True)
    _registered = True


def unregister_immutability_listeners() -> None:
    """Remove the listeners. Tests that need to bypass them only."""
    global _registered
    if not _registered:
        return
    targets = _targets()
    for target_key, event_name, listener in _LISTENERS:
        event.remove(targets[target_key], event_name, listener)
    _registered = False
