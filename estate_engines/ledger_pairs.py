"""
Module: estate_engines.ledger_pairs
Responsibility:
    Build the balanced line sets for every posting the engine makes and
    validate any line set before it is written.

    ===============  ===============================  ===============================
    Posting          Debit                            Credit
    ===============  ===============================  ===============================
    sale             Accounts Receivable - Clients    Sales Revenue
    receipt          Cash or Bank (by method)         Accounts Receivable - Clients
    expense          Expense                          Cash or Bank (by method)
    refund accrual   Sales Returns                    Refunds Payable - Clients
    refund payment   Refunds Payable - Clients        Cash or Bank (by method)
    ===============  ===============================  ===============================

Architecture position:
    Engines -- pure.  A LedgerPosting validates its lines on construction,
    so a malformed set never leaves this module; LedgerService validates
    again before insert regardless of who built the lines.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from estate_engines.tracer import traced_engine
from estate_kernel.domain.ledger import (
    ACCOUNTS_RECEIVABLE,
    OPERATING_EXPENSE,
    REFUNDS_PAYABLE,
    SALES_RETURNS,
    SALES_REVENUE,
    Account,
    LedgerLine,
    LedgerPosting,
    PaymentMethod,
    TransactionType,
    cash_or_bank,
)
from estate_kernel.exceptions import ValidationError

ZERO = Decimal("0")


def _pair(debit_account: Account, credit_account: Account, amount: Decimal) -> tuple[LedgerLine, ...]:
    if amount <= ZERO:
        raise ValidationError(f"Posting amount must be positive, got {amount}", field="amount")
    return (
        LedgerLine(account=debit_account, debit=amount, credit=ZERO),
        LedgerLine(account=credit_account, debit=ZERO, credit=amount),
    )


@traced_engine("ledger_pairs.sale", "1.0", fingerprint_fields=("sale_number", "total_price"))
def sale_posting(
    *,
    sale_id: UUID,
    sale_number: str,
    client_id: UUID,
    total_price: Decimal,
    transaction_date: date,
) -> LedgerPosting:
    return LedgerPosting(
        reference_type="Sale",
        reference_id=sale_id,
        reference_number=sale_number,
        transaction_type=TransactionType.SALE,
        transaction_date=transaction_date,
        description=f"Sale {sale_number}",
        lines=_pair(ACCOUNTS_RECEIVABLE, SALES_REVENUE, total_price),
        client_id=client_id,
    )


@traced_engine("ledger_pairs.receipt", "1.0", fingerprint_fields=("receipt_number", "amount"))
def receipt_posting(
    *,
    receipt_id: UUID,
    receipt_number: str,
    client_id: UUID | None,
    amount: Decimal,
    method: PaymentMethod,
    transaction_date: date,
) -> LedgerPosting:
    return LedgerPosting(
        reference_type="Receipt",
        reference_id=receipt_id,
        reference_number=receipt_number,
        transaction_type=TransactionType.RECEIPT,
        transaction_date=transaction_date,
        description=f"Receipt {receipt_number} ({method.value})",
        lines=_pair(cash_or_bank(method), ACCOUNTS_RECEIVABLE, amount),
        client_id=client_id,
    )


@traced_engine("ledger_pairs.expense", "1.0", fingerprint_fields=("expense_number", "amount"))
def expense_posting(
    *,
    expense_id: UUID,
    expense_number: str,
    category: str,
    amount: Decimal,
    method: PaymentMethod,
    transaction_date: date,
) -> LedgerPosting:
    return LedgerPosting(
        reference_type="Expense",
        reference_id=expense_id,
        reference_number=expense_number,
        transaction_type=TransactionType.EXPENSE,
        transaction_date=transaction_date,
        description=f"Expense {expense_number}: {category}",
        lines=_pair(OPERATING_EXPENSE, cash_or_bank(method), amount),
    )


def refund_accrual_posting(
    *,
    refund_id: UUID,
    refund_number: str,
    client_id: UUID | None,
    amount: Decimal,
    transaction_date: date,
) -> LedgerPosting:
    return LedgerPosting(
        reference_type="Refund",
        reference_id=refund_id,
        reference_number=refund_number,
        transaction_type=TransactionType.REFUND,
        transaction_date=transaction_date,
        description=f"Refund {refund_number} approved",
        lines=_pair(SALES_RETURNS, REFUNDS_PAYABLE, amount),
        client_id=client_id,
    )


def refund_payment_posting(
    *,
    refund_id: UUID,
    refund_number: str,
    client_id: UUID | None,
    amount: Decimal,
    method: PaymentMethod,
    transaction_date: date,
) -> LedgerPosting:
    return LedgerPosting(
        reference_type="Refund",
        reference_id=refund_id,
        reference_number=refund_number,
        transaction_type=TransactionType.PAYMENT,
        transaction_date=transaction_date,
        description=f"Refund {refund_number} paid ({method.value})",
        lines=_pair(REFUNDS_PAYABLE, cash_or_bank(method), amount),
        client_id=client_id,
    )
