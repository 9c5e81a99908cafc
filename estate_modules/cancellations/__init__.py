"""Sale cancellation, settlement terms and refund schedules."""

from estate_modules.cancellations.models import (
    Cancellation,
    CancellationStats,
    CancellationStatus,
    Reconciliation,
    RefundLine,
    RefundPaymentStatus,
)
from estate_modules.cancellations.service import CancellationService

__all__ = [
    "Cancellation",
    "CancellationService",
    "CancellationStats",
    "CancellationStatus",
    "Reconciliation",
    "RefundLine",
    "RefundPaymentStatus",
]
