"""
EstateContext -- explicit dependencies for every module service.

Carries the session (store handle), clock, settings, entity lock registry
and the outbound sinks.  Services are constructed per request from a
context; nothing is a process-wide singleton apart from the default lock
registry, which must be shared for its locks to mean anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from estate_config import EstateSettings, get_settings
from estate_kernel.domain.clock import Clock, SystemClock
from estate_kernel.domain.events import (
    AuditSink,
    NotificationSink,
    NullAuditSink,
    NullNotificationSink,
)
from estate_kernel.services.lock_registry import LockRegistry, default_lock_registry
from estate_kernel.services.sequence_service import SequenceService
from estate_kernel.services.unit_of_work import UnitOfWork


@dataclass
class EstateContext:
    session: Session
    clock: Clock = field(default_factory=SystemClock)
    settings: EstateSettings = field(default_factory=get_settings)
    locks: LockRegistry = field(default_factory=lambda: default_lock_registry)
    notifier: NotificationSink = field(default_factory=NullNotificationSink)
    audit: AuditSink = field(default_factory=NullAuditSink)

    @property
    def sequences(self) -> SequenceService:
        return SequenceService(self.session)

    def unit_of_work(self, operation: str) -> UnitOfWork:
        return UnitOfWork(
            self.session,
            self.locks,
            operation,
            notifier=self.notifier,
            audit=self.audit,
        )
