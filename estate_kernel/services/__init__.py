"""Kernel services: transaction boundary, sequences, locks, ledger, approvals."""

from estate_kernel.services.approval_service import ApprovalService
from estate_kernel.services.ledger_service import LedgerService, PostingResult
from estate_kernel.services.lock_registry import LockRegistry, default_lock_registry
from estate_kernel.services.sequence_service import SequenceService
from estate_kernel.services.unit_of_work import UnitOfWork

__all__ = [
    "ApprovalService",
    "LedgerService",
    "LockRegistry",
    "PostingResult",
    "SequenceService",
    "UnitOfWork",
    "default_lock_registry",
]
