"""
Ledger value objects (``estate_kernel.domain.ledger``).

A posting is a set of LedgerLines sharing one reference id.  Lines are
built by ``estate_engines.ledger_pairs`` and written by LedgerService;
nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from estate_kernel.exceptions import (
    InvalidLedgerLineError,
    MissingInstrumentError,
    UnbalancedEntryError,
)

ZERO = Decimal("0")


class AccountType(str, Enum):
    ASSET = "Asset"
    LIABILITY = "Liability"
    EQUITY = "Equity"
    REVENUE = "Revenue"
    EXPENSE = "Expense"


class TransactionType(str, Enum):
    RECEIPT = "Receipt"
    PAYMENT = "Payment"
    SALE = "Sale"
    REFUND = "Refund"
    ADJUSTMENT = "Adjustment"
    OPENING_BALANCE = "Opening Balance"
    EXPENSE = "Expense"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    PDC = "PDC"
    MOBILE_WALLET = "Mobile Wallet"

    @property
    def requires_instrument(self) -> bool:
        return self in (PaymentMethod.CHEQUE, PaymentMethod.PDC)


@dataclass(frozen=True)
class Account:
    name: str
    account_type: AccountType


CASH = Account("Cash", AccountType.ASSET)
BANK = Account("Bank", AccountType.ASSET)
ACCOUNTS_RECEIVABLE = Account("Accounts Receivable - Clients", AccountType.ASSET)
SALES_REVENUE = Account("Sales Revenue", AccountType.REVENUE)
SALES_RETURNS = Account("Sales Returns", AccountType.REVENUE)
REFUNDS_PAYABLE = Account("Refunds Payable - Clients", AccountType.LIABILITY)
OPERATING_EXPENSE = Account("Expense", AccountType.EXPENSE)


def cash_or_bank(method: PaymentMethod) -> Account:
    """Cash receipts land in Cash; every other method in Bank."""
    return CASH if method == PaymentMethod.CASH else BANK


@dataclass(frozen=True)
class LedgerLine:
    """One side of a posting. Exactly one of debit/credit is positive."""

    account: Account
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class LedgerPosting:
    """A balanced set of lines for one source document."""

    reference_type: str
    reference_id: UUID
    reference_number: str | None
    transaction_type: TransactionType
    transaction_date: date
    description: str
    lines: tuple[LedgerLine, ...]
    client_id: UUID | None = None

    def __post_init__(self) -> None:
        validate_lines(str(self.reference_id), self.lines)

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)


def validate_line(line: LedgerLine) -> None:
    """Exactly one side positive, neither negative."""
    if line.debit < ZERO or line.credit < ZERO:
        raise InvalidLedgerLineError(line.account.name, line.debit, line.credit)
    if (line.debit > ZERO) == (line.credit > ZERO):
        raise InvalidLedgerLineError(line.account.name, line.debit, line.credit)


def validate_lines(reference_id: str, lines: tuple[LedgerLine, ...]) -> None:
    """
    Reject a line set that is empty, malformed or unbalanced.

    Raises:
        InvalidLedgerLineError: a line with both or neither side populated.
        UnbalancedEntryError: debits != credits, or no lines at all.
    """
    if not lines:
        raise UnbalancedEntryError(reference_id, ZERO, ZERO)
    for line in lines:
        validate_line(line)
    debits = sum((line.debit for line in lines), ZERO)
    credits = sum((line.credit for line in lines), ZERO)
    if debits != credits:
        raise UnbalancedEntryError(reference_id, debits, credits)


def require_instrument(
    method: PaymentMethod,
    bank_name: str | None,
    cheque_number: str | None,
) -> None:
    """Cheque and PDC payments must name the bank and the instrument number."""
    if not method.requires_instrument:
        return
    missing = [
        field
        for field, value in (("bank_name", bank_name), ("cheque_number", cheque_number))
        if not (value or "").strip()
    ]
    if missing:
        raise MissingInstrumentError(method.value, missing)
