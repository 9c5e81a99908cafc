"""
UnitOfWork -- all-or-nothing boundary for one engine operation.

Responsibility:
    Wraps every cross-entity mutation (plot + parcel, approval + ledger
    posting, cancellation + sale) so that it commits as a whole or not at
    all.  Entity locks taken through the unit of work are held until after
    commit/rollback.  Notification and audit events queued during the
    operation are dispatched only after a successful commit.

Architecture position:
    Kernel > Services.  Opened by every public module-service method.
    Nested units of work on the same session join the outermost one: they
    neither commit nor roll back, and their locks and events belong to it.

Failure modes:
    - Store errors are translated: StaleDataError -> OptimisticLockError,
      OperationalError / pool TimeoutError -> TransientStoreFailure,
      IntegrityError -> ConflictError.  The session is rolled back first.
    - Sink failures after commit are logged and dropped.
"""

from __future__ import annotations

from contextlib import ExitStack
from typing import Any

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from estate_kernel.domain.events import (
    AuditRecord,
    AuditSink,
    NotificationEvent,
    NotificationSink,
    NullAuditSink,
    NullNotificationSink,
)
from estate_kernel.exceptions import (
    ConflictError,
    EstateError,
    OptimisticLockError,
    TransientStoreFailure,
)
from estate_kernel.logging_config import LogContext, get_logger
from estate_kernel.services.lock_registry import LockRegistry

logger = get_logger("services.unit_of_work")

_ROOT_KEY = "estate_unit_of_work"


def translate_store_error(exc: SQLAlchemyError) -> EstateError | None:
    """Map a SQLAlchemy failure to the engine taxonomy, or None if it is a bug."""
    if isinstance(exc, StaleDataError):
        return OptimisticLockError("row", str(exc))
    if isinstance(exc, IntegrityError):
        return ConflictError(
            "Store rejected a duplicate or inconsistent write",
            constraint=str(exc.orig)[:200],
        )
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return TransientStoreFailure(
            "Store unavailable or contended; retry the operation",
            cause=type(exc).__name__,
        )
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return TransientStoreFailure(
            "Store connection lost; retry the operation",
            cause=type(exc).__name__,
        )
    return None


class UnitOfWork:
    """
    Usage:
        with UnitOfWork(session, locks, "create_plot") as uow:
            uow.lock("land_parcel", parcel_id)
            ...  # reads, checks, writes
            uow.notify(event)
    """

    def __init__(
        self,
        session: Session,
        locks: LockRegistry,
        operation: str,
        notifier: NotificationSink | None = None,
        audit: AuditSink | None = None,
    ):
        self._session = session
        self._locks = locks
        self._operation = operation
        self._notifier = notifier or NullNotificationSink()
        self._audit = audit or NullAuditSink()
        self._root: UnitOfWork | None = None
        self._stack: ExitStack | None = None
        self._log_binding: Any = None
        self._notifications: list[NotificationEvent] = []
        self._audit_records: list[AuditRecord] = []

    @property
    def session(self) -> Session:
        return self._session

    @property
    def is_root(self) -> bool:
        return self._root is self

    def __enter__(self) -> UnitOfWork:
        existing = self._session.info.get(_ROOT_KEY)
        if existing is not None:
            self._root = existing
            return self
        self._root = self
        self._session.info[_ROOT_KEY] = self
        self._stack = ExitStack()
        self._log_binding = LogContext.bind(operation=self._operation)
        self._log_binding.__enter__()
        return self

    def lock(self, entity_type: str, entity_id: object) -> None:
        """Hold an entity lock until the outermost unit of work finishes."""
        root = self._root
        assert root is not None and root._stack is not None, "UnitOfWork not entered"
        root._stack.enter_context(root._locks.hold(entity_type, entity_id))

    def notify(self, event: NotificationEvent) -> None:
        assert self._root is not None, "UnitOfWork not entered"
        self._root._notifications.append(event)

    def audit(self, record: AuditRecord) -> None:
        assert self._root is not None, "UnitOfWork not entered"
        self._root._audit_records.append(record)

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.is_root:
            return False

        committed = False
        try:
            if exc_type is None:
                try:
                    self._session.commit()
                    committed = True
                except SQLAlchemyError as commit_exc:
                    self._rollback()
                    translated = translate_store_error(commit_exc)
                    if translated is None:
                        raise
                    raise translated from commit_exc
            else:
                self._rollback()
                if isinstance(exc, SQLAlchemyError):
                    translated = translate_store_error(exc)
                    if translated is not None:
                        raise translated from exc
        finally:
            self._session.info.pop(_ROOT_KEY, None)
            assert self._stack is not None
            self._stack.close()
            self._log_binding.__exit__(None, None, None)

        if committed:
            self._dispatch()
        return False

    def _rollback(self) -> None:
        self._session.rollback()
        logger.warning(
            "unit_of_work_rolled_back",
            extra={"operation": self._operation},
        )

    def _dispatch(self) -> None:
        for event in self._notifications:
            try:
                self._notifier.notify(event)
            except Exception:
                logger.warning(
                    "notification_dispatch_failed",
                    extra={"kind": event.kind.value, "reference": event.reference},
                    exc_info=True,
                )
        for record in self._audit_records:
            try:
                self._audit.record(record)
            except Exception:
                logger.warning(
                    "audit_dispatch_failed",
                    extra={"action": record.action, "entity_id": record.entity_id},
                    exc_info=True,
                )
        self._notifications.clear()
        self._audit_records.clear()
