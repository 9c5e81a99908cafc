"""
Outbound events and the sink protocols that consume them.

The engine emits notification events (SMS layer) and audit records
(audit layer).  Both sinks are best-effort: a failing sink is logged and
never rolls back the unit of work that produced the event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID


class NotificationKind(str, Enum):
    PAYMENT_CONFIRMED = "payment_confirmed"
    INSTALLMENT_DUE = "installment_due"
    INSTALLMENT_MISSED = "installment_missed"
    REFUND_DUE = "refund_due"
    CHEQUE_DUE = "cheque_due"


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    phone: str | None
    name: str
    amount: Decimal
    reference: str


@dataclass(frozen=True)
class AuditRecord:
    actor_id: UUID | None
    action: str
    entity_type: str
    entity_id: str
    occurred_at: datetime
    before: dict[str, Any] = field(default_factory=dict)
    after: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def notify(self, event: NotificationEvent) -> None:
        ...


class AuditSink(Protocol):
    def record(self, record: AuditRecord) -> None:
        ...


class NullNotificationSink:
    def notify(self, event: NotificationEvent) -> None:
        return None


class NullAuditSink:
    def record(self, record: AuditRecord) -> None:
        return None
