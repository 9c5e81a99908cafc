"""
Pure calculation engines for the estate back office.

Each module takes plain values and returns frozen dataclasses; none of
them reads the clock or touches the database.
"""

from estate_engines.aging import AgingReport, ReceivableItem, age_receivables
from estate_engines.installment_schedule import (
    InstallmentFrequency,
    InstallmentStatus,
    generate_schedule,
    line_status,
)
from estate_engines.land_area import AreaBalance, allocate, release, revert_sale, sell
from estate_engines.settlement import CancellationStatus, compute_settlement, refund_progress
from estate_engines.stage_account import SaleStatus, StageName, StageStatus, recompute_sale

__all__ = [
    "AgingReport",
    "AreaBalance",
    "CancellationStatus",
    "InstallmentFrequency",
    "InstallmentStatus",
    "ReceivableItem",
    "SaleStatus",
    "StageName",
    "StageStatus",
    "age_receivables",
    "allocate",
    "compute_settlement",
    "generate_schedule",
    "line_status",
    "recompute_sale",
    "refund_progress",
    "release",
    "revert_sale",
    "sell",
]
