"""
Pure domain layer: value objects, enums and state machines.

No ORM, no database, no I/O (SystemClock excepted).
"""

from estate_kernel.domain.approval import (
    Actor,
    ApprovalAction,
    ApprovalDecision,
    ApprovalStatus,
    Role,
    decide,
)
from estate_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from estate_kernel.domain.identifiers import DocumentKind, format_document_number
from estate_kernel.domain.ledger import (
    AccountType,
    LedgerLine,
    LedgerPosting,
    PaymentMethod,
    TransactionType,
)
from estate_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "AccountType",
    "Actor",
    "ApprovalAction",
    "ApprovalDecision",
    "ApprovalStatus",
    "Clock",
    "DeterministicClock",
    "DocumentKind",
    "Guard",
    "LedgerLine",
    "LedgerPosting",
    "PaymentMethod",
    "Role",
    "SystemClock",
    "TransactionType",
    "Transition",
    "Workflow",
    "decide",
    "format_document_number",
]
