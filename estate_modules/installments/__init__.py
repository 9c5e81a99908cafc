"""Installment schedules for a sale's Installments stage."""

from estate_modules.installments.models import (
    ClientStatement,
    InstallmentFrequency,
    InstallmentLine,
    InstallmentStatus,
)
from estate_modules.installments.service import InstallmentService

__all__ = [
    "ClientStatement",
    "InstallmentFrequency",
    "InstallmentLine",
    "InstallmentService",
    "InstallmentStatus",
]
