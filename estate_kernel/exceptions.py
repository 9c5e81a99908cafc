"""
Estate engine exception hierarchy.

Every error raised by the engine derives from :class:`EstateError` and
carries a machine-readable ``code`` plus a ``details`` mapping, so the
HTTP layer can render ``{code, message, details}`` without inspecting
exception types.

Hierarchy::

    EstateError
    +-- ValidationError                 VALIDATION_ERROR
    |   +-- InvalidLedgerLineError      INVALID_LEDGER_LINE
    |   +-- UnbalancedEntryError        UNBALANCED_ENTRY
    |   +-- MissingInstrumentError      MISSING_INSTRUMENT
    +-- NotFoundError                   NOT_FOUND
    +-- ConflictError                   CONFLICT
    |   +-- AlreadyCancelledError       ALREADY_CANCELLED
    |   +-- DuplicatePostingError       DUPLICATE_POSTING
    +-- BusinessRuleError               BUSINESS_RULE_VIOLATION
    |   +-- InsufficientAreaError       INSUFFICIENT_AREA
    |   +-- InsufficientFundsError      INSUFFICIENT_FUNDS
    +-- InvalidStateTransitionError     INVALID_STATE_TRANSITION
    |   +-- ImmutabilityViolationError  IMMUTABILITY_VIOLATION
    +-- ForbiddenError                  FORBIDDEN
    +-- TransientStoreFailure           TRANSIENT_STORE_FAILURE
    |   +-- OptimisticLockError         OPTIMISTIC_LOCK_FAILED
    |   +-- LockTimeoutError            LOCK_TIMEOUT
    +-- FatalInvariantError             FATAL_INVARIANT

``TransientStoreFailure`` is the only family with ``retryable = True``:
the caller may re-run the whole operation. Everything else is a
deterministic rejection and retrying it yields the same error.
"""

from decimal import Decimal
from enum import Enum
from typing import Any


class EstateError(Exception):
    """Base exception for all estate engine errors."""

    code: str = "ESTATE_ERROR"
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details: dict[str, Any] = details
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        """Render the error for the HTTP boundary."""
        return {
            "code": self.code,
            "message": self.message,
            "details": {k: _plain(v) for k, v in self.details.items()},
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(EstateError):
    """Malformed or out-of-range input, rejected before any state change."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, **details: Any):
        self.field = field
        if field is not None:
            details["field"] = field
        super().__init__(message, **details)


class InvalidLedgerLineError(ValidationError):
    """A ledger line has both or neither of debit and credit populated."""

    code: str = "INVALID_LEDGER_LINE"

    def __init__(self, account: str, debit: Decimal, credit: Decimal):
        self.account = account
        self.debit = debit
        self.credit = credit
        super().__init__(
            f"Ledger line for {account} must carry exactly one positive side "
            f"(debit={debit}, credit={credit})",
            account=account,
            debit=debit,
            credit=credit,
        )


class UnbalancedEntryError(ValidationError):
    """Debits and credits of one posting do not net to zero."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, reference_id: str, debits: Decimal, credits: Decimal):
        self.reference_id = reference_id
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Posting for {reference_id} is unbalanced: "
            f"debits={debits}, credits={credits}",
            reference_id=reference_id,
            debits=debits,
            credits=credits,
        )


class MissingInstrumentError(ValidationError):
    """Cheque-style payment without bank name or instrument number."""

    code: str = "MISSING_INSTRUMENT"

    def __init__(self, method: str, missing: list[str]):
        self.method = method
        self.missing = missing
        super().__init__(
            f"Payment method {method} requires {', '.join(missing)}",
            method=method,
            missing=missing,
        )


# ---------------------------------------------------------------------------
# Lookup / uniqueness
# ---------------------------------------------------------------------------


class NotFoundError(EstateError):
    """Referenced entity is absent."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"{entity_type} {entity_id} not found",
            entity_type=entity_type,
            entity_id=str(entity_id),
        )


class ConflictError(EstateError):
    """Duplicate entry or uniqueness violation."""

    code: str = "CONFLICT"


class AlreadyCancelledError(ConflictError):
    """Sale is already cancelled or already has a cancellation."""

    code: str = "ALREADY_CANCELLED"

    def __init__(self, sale_id: Any, reason: str):
        self.sale_id = str(sale_id)
        super().__init__(
            f"Sale {sale_id} cannot be cancelled: {reason}",
            sale_id=str(sale_id),
        )


class DuplicatePostingError(ConflictError):
    """A posting already exists for this reference and transaction type."""

    code: str = "DUPLICATE_POSTING"

    def __init__(self, reference_id: str, transaction_type: str):
        self.reference_id = reference_id
        self.transaction_type = transaction_type
        super().__init__(
            f"{transaction_type} posting already exists for {reference_id}",
            reference_id=reference_id,
            transaction_type=transaction_type,
        )


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


class BusinessRuleError(EstateError):
    """A domain rule rejects the requested operation."""

    code: str = "BUSINESS_RULE_VIOLATION"


class InsufficientAreaError(BusinessRuleError):
    """Requested area exceeds the parcel's remaining (or releasable) area."""

    code: str = "INSUFFICIENT_AREA"

    def __init__(self, parcel: str, requested: Decimal, available: Decimal):
        self.parcel = parcel
        self.requested = requested
        self.available = available
        super().__init__(
            f"Parcel {parcel}: requested area {requested} exceeds available {available}",
            parcel=parcel,
            requested=requested,
            available=available,
        )


class InsufficientFundsError(BusinessRuleError):
    """Amount exceeds what remains to be paid or refunded."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, reference: str, requested: Decimal, available: Decimal):
        self.reference = reference
        self.requested = requested
        self.available = available
        super().__init__(
            f"{reference}: amount {requested} exceeds available {available}",
            reference=reference,
            requested=requested,
            available=available,
        )


# ---------------------------------------------------------------------------
# State machines / authorization
# ---------------------------------------------------------------------------


class InvalidStateTransitionError(EstateError):
    """Illegal status move for an entity."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, entity_type: str, from_state: str, to_state: str, reason: str = ""):
        self.entity_type = entity_type
        self.from_state = from_state
        self.to_state = to_state
        message = f"{entity_type} cannot move from {from_state} to {to_state}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            entity_type=entity_type,
            from_state=from_state,
            to_state=to_state,
        )


class ImmutabilityViolationError(InvalidStateTransitionError):
    """Attempt to modify or delete an append-only or approved record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(entity_type, "persisted", "modified", reason)
        self.message = f"{entity_type} {entity_id} is immutable: {reason}"
        self.args = (self.message,)
        self.details["entity_id"] = entity_id


class ForbiddenError(EstateError):
    """The acting role is not permitted to act on the current state."""

    code: str = "FORBIDDEN"

    def __init__(self, role: str, action: str, state: str):
        self.role = role
        self.action = action
        self.state = state
        super().__init__(
            f"Role {role} may not {action} a document in {state}",
            role=role,
            action=action,
            state=state,
        )


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


class TransientStoreFailure(EstateError):
    """I/O timeout or contention. Safe to retry the whole operation."""

    code: str = "TRANSIENT_STORE_FAILURE"
    retryable: bool = True


class OptimisticLockError(TransientStoreFailure):
    """A concurrent writer changed the row between read and write."""

    code: str = "OPTIMISTIC_LOCK_FAILED"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class LockTimeoutError(TransientStoreFailure):
    """An entity lock could not be acquired within the bounded timeout."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout}s waiting for lock {key}",
            key=key,
            timeout=timeout,
        )


class FatalInvariantError(EstateError):
    """An invariant is violated after a write. Never silently corrected."""

    code: str = "FATAL_INVARIANT"

    def __init__(self, invariant: str, message: str, **details: Any):
        self.invariant = invariant
        super().__init__(message, invariant=invariant, **details)
