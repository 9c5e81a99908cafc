"""
LedgerSelector -- ledger reads for reporting.

All balances are derived from LedgerEntry rows; no balance is stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from estate_kernel.models.ledger import LedgerEntryModel
from estate_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerEntryView:
    id: UUID
    posting_id: UUID
    line_no: int
    transaction_date: date
    account_name: str
    account_type: str
    debit: Decimal
    credit: Decimal
    transaction_type: str
    reference_type: str
    reference_id: UUID
    reference_number: str | None
    description: str


@dataclass(frozen=True)
class ReferenceBalance:
    reference_id: UUID
    debits: Decimal
    credits: Decimal

    @property
    def difference(self) -> Decimal:
        return self.debits - self.credits


@dataclass(frozen=True)
class TrialBalanceRow:
    account_name: str
    account_type: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        return self.debit_total - self.credit_total


def _view(row: LedgerEntryModel) -> LedgerEntryView:
    return LedgerEntryView(
        id=row.id,
        posting_id=row.posting_id,
        line_no=row.line_no,
        transaction_date=row.transaction_date,
        account_name=row.account_name,
        account_type=row.account_type,
        debit=row.debit,
        credit=row.credit,
        transaction_type=row.transaction_type,
        reference_type=row.reference_type,
        reference_id=row.reference_id,
        reference_number=row.reference_number,
        description=row.description,
    )


class LedgerSelector(BaseSelector):
    def entries_for_reference(self, reference_id: UUID) -> list[LedgerEntryView]:
        rows = self.session.scalars(
            select(LedgerEntryModel)
            .where(LedgerEntryModel.reference_id == reference_id)
            .order_by(LedgerEntryModel.transaction_type, LedgerEntryModel.line_no)
        )
        return [_view(r) for r in rows]

    def reference_balances(self) -> list[ReferenceBalance]:
        rows = self.session.execute(
            select(
                LedgerEntryModel.reference_id,
                func.sum(LedgerEntryModel.debit),
                func.sum(LedgerEntryModel.credit),
            ).group_by(LedgerEntryModel.reference_id)
        )
        return [
            ReferenceBalance(reference_id=ref, debits=Decimal(d or 0), credits=Decimal(c or 0))
            for ref, d, c in rows
        ]

    def unbalanced_references(self) -> list[ReferenceBalance]:
        """References whose debits and credits differ. Empty when the ledger is sound."""
        return [b for b in self.reference_balances() if b.difference != ZERO]

    def trial_balance(self, as_of: date | None = None) -> list[TrialBalanceRow]:
        stmt = select(
            LedgerEntryModel.account_name,
            LedgerEntryModel.account_type,
            func.sum(LedgerEntryModel.debit),
            func.sum(LedgerEntryModel.credit),
        ).group_by(LedgerEntryModel.account_name, LedgerEntryModel.account_type)
        if as_of is not None:
            stmt = stmt.where(LedgerEntryModel.transaction_date <= as_of)
        rows = self.session.execute(stmt.order_by(LedgerEntryModel.account_name))
        return [
            TrialBalanceRow(
                account_name=name,
                account_type=account_type,
                debit_total=Decimal(d or 0),
                credit_total=Decimal(c or 0),
            )
            for name, account_type, d, c in rows
        ]

    def account_book(
        self,
        account_names: tuple[str, ...] | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[LedgerEntryView]:
        """
        Entries in date order.  ``("Cash",)`` gives the cash book,
        ``("Bank",)`` the bank book, and no filter with one date the day book.
        """
        stmt = select(LedgerEntryModel)
        if account_names:
            stmt = stmt.where(LedgerEntryModel.account_name.in_(account_names))
        if start is not None:
            stmt = stmt.where(LedgerEntryModel.transaction_date >= start)
        if end is not None:
            stmt = stmt.where(LedgerEntryModel.transaction_date <= end)
        stmt = stmt.order_by(
            LedgerEntryModel.transaction_date,
            LedgerEntryModel.created_at,
            LedgerEntryModel.line_no,
        )
        return [_view(r) for r in self.session.scalars(stmt)]

    def account_balance(self, account_name: str, as_of: date | None = None) -> Decimal:
        stmt = select(
            func.coalesce(func.sum(LedgerEntryModel.debit), 0)
            - func.coalesce(func.sum(LedgerEntryModel.credit), 0)
        ).where(LedgerEntryModel.account_name == account_name)
        if as_of is not None:
            stmt = stmt.where(LedgerEntryModel.transaction_date <= as_of)
        return Decimal(self.session.scalar(stmt) or 0)
