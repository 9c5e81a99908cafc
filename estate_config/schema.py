"""
Settings schema (``estate_config.schema``).

One frozen dataclass holds every tunable the engine reads.  Business
defaults mirror how the back office has always operated: a 10% office
charge on cancellations, refunds over six monthly lines, installments
counted as missed after 30 days unpaid.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class EstateSettings:
    database_url: str = "sqlite+pysqlite:///:memory:"
    statement_timeout_seconds: float = 10.0
    lock_timeout_seconds: float = 5.0
    pool_size: int = 10
    default_office_charge_percent: Decimal = Decimal("10")
    refund_installment_count: int = 6
    refund_frequency_months: int = 1
    missed_after_days: int = 30
    reminder_lead_days: int = 3
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.default_office_charge_percent <= Decimal("100"):
            raise ValueError("default_office_charge_percent must be within 0..100")
        if self.refund_installment_count < 1:
            raise ValueError("refund_installment_count must be at least 1")
        if self.refund_frequency_months not in (1, 3, 6, 12):
            raise ValueError("refund_frequency_months must be 1, 3, 6 or 12")
        if self.missed_after_days < 0 or self.reminder_lead_days < 0:
            raise ValueError("day thresholds cannot be negative")
        if self.lock_timeout_seconds <= 0 or self.statement_timeout_seconds <= 0:
            raise ValueError("timeouts must be positive")
