"""Receipt domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from estate_engines.stage_account import StageName
from estate_kernel.domain.approval import ApprovalStatus
from estate_kernel.domain.ledger import PaymentMethod


@dataclass(frozen=True)
class Receipt:
    id: UUID
    receipt_number: str
    sale_id: UUID
    client_id: UUID
    stage_name: StageName
    installment_sequence: int | None
    amount: Decimal
    payment_method: PaymentMethod
    bank_name: str | None
    cheque_number: str | None
    cheque_date: date | None
    receipt_date: date
    approval_status: ApprovalStatus
    posted_to_ledger: bool
    remarks: str | None
