"""Expense domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from estate_kernel.domain.approval import ApprovalStatus
from estate_kernel.domain.ledger import PaymentMethod


@dataclass(frozen=True)
class Expense:
    id: UUID
    expense_number: str
    category: str
    description: str | None
    payee: str | None
    amount: Decimal
    payment_method: PaymentMethod
    bank_name: str | None
    cheque_number: str | None
    expense_date: date
    approval_status: ApprovalStatus
    posted_to_ledger: bool
