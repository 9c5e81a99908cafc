"""
ExpenseService -- operating expenses through two-level approval.

Final approval posts Dr Expense / Cr Cash-or-Bank once.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from estate_engines.ledger_pairs import expense_posting
from estate_kernel.db.types import to_decimal
from estate_kernel.domain.approval import Actor, ApprovalHistoryEntry, ApprovalStatus, Role
from estate_kernel.domain.identifiers import DocumentKind
from estate_kernel.domain.ledger import PaymentMethod, require_instrument
from estate_kernel.exceptions import ValidationError
from estate_kernel.logging_config import get_logger
from estate_kernel.services.approval_service import ApprovalService
from estate_kernel.services.ledger_service import LedgerService
from estate_kernel.services.unit_of_work import UnitOfWork
from estate_modules.base import ModuleService
from estate_modules.expenses.models import Expense
from estate_modules.expenses.orm import ExpenseModel

logger = get_logger("modules.expenses.service")

EXPENSE_LOCK = "expense"
ZERO = Decimal("0")

_EDITABLE_FIELDS = frozenset({
    "category",
    "description",
    "payee",
    "amount",
    "payment_method",
    "bank_name",
    "cheque_number",
    "expense_date",
})


def _validate(expense: ExpenseModel) -> None:
    if not (expense.category or "").strip():
        raise ValidationError("Expense category is required", field="category")
    if expense.amount <= ZERO:
        raise ValidationError("Expense amount must be positive", field="amount")
    require_instrument(PaymentMethod(expense.payment_method), expense.bank_name, expense.cheque_number)


class ExpenseService(ModuleService):
    @property
    def _approvals(self) -> ApprovalService:
        return ApprovalService(self._session, self._clock)

    def _lock(self, uow: UnitOfWork, expense_id: UUID) -> ExpenseModel:
        uow.lock(EXPENSE_LOCK, expense_id)
        return self._get_for_update(ExpenseModel, expense_id, "Expense")

    def create_expense(
        self,
        actor: Actor,
        category: str,
        amount: Decimal | int | str,
        payment_method: PaymentMethod,
        description: str | None = None,
        payee: str | None = None,
        bank_name: str | None = None,
        cheque_number: str | None = None,
        expense_date: date | None = None,
    ) -> Expense:
        expense = ExpenseModel(
            category=(category or "").strip(),
            description=description,
            payee=payee,
            amount=to_decimal(amount, "amount"),
            payment_method=payment_method.value,
            bank_name=bank_name,
            cheque_number=cheque_number,
            expense_date=expense_date or self._clock.today(),
            created_by_id=actor.actor_id,
        )
        _validate(expense)
        with self._uow("create_expense", actor) as uow:
            expense.document_number = self._ctx.sequences.next_document_number(
                DocumentKind.EXPENSE, self._clock.today(),
            )
            self._session.add(expense)
            self._session.flush()
            self._audit(uow, actor, "expense_created", "Expense", expense.id,
                        after={"expense_number": expense.document_number, "amount": str(expense.amount)})
            logger.info(
                "expense_created",
                extra={
                    "expense_number": expense.document_number,
                    "category": expense.category,
                    "amount": str(expense.amount),
                },
            )
            return expense.to_dto()

    def update_expense(self, actor: Actor, expense_id: UUID, **changes: Any) -> Expense:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Expense fields cannot be edited: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        with self._uow("update_expense", actor) as uow:
            expense = self._lock(uow, expense_id)
            ApprovalService.ensure_editable(expense)
            for key, value in changes.items():
                if key == "amount":
                    value = to_decimal(value, "amount")
                elif key == "payment_method":
                    value = value.value
                setattr(expense, key, value)
            expense.updated_by_id = actor.actor_id
            _validate(expense)
            self._session.flush()
            self._audit(uow, actor, "expense_updated", "Expense", expense.id,
                        after={key: str(getattr(expense, key)) for key in changes})
            return expense.to_dto()

    def delete_expense(self, actor: Actor, expense_id: UUID) -> None:
        with self._uow("delete_expense", actor) as uow:
            expense = self._lock(uow, expense_id)
            ApprovalService.ensure_deletable(expense)
            expense.is_deleted = True
            expense.updated_by_id = actor.actor_id
            self._session.flush()
            self._audit(uow, actor, "expense_deleted", "Expense", expense.id)

    def _post_approved(self, expense: ExpenseModel, actor: Actor) -> None:
        LedgerService(self._session, self._clock).post(
            expense_posting(
                expense_id=expense.id,
                expense_number=expense.document_number,
                category=expense.category,
                amount=expense.amount,
                method=PaymentMethod(expense.payment_method),
                transaction_date=expense.expense_date,
            ),
            actor.actor_id,
        )

    def submit_expense(self, actor: Actor, expense_id: UUID) -> Expense:
        with self._uow("submit_expense", actor) as uow:
            expense = self._lock(uow, expense_id)
            self._approvals.submit(expense, actor)
            return expense.to_dto()

    def approve_expense(self, actor: Actor, expense_id: UUID, remarks: str | None = None) -> Expense:
        with self._uow("approve_expense", actor) as uow:
            expense = self._lock(uow, expense_id)
            before = expense.approval_status
            self._approvals.approve(
                expense, actor,
                on_approved=lambda doc: self._post_approved(doc, actor),
                remarks=remarks,
            )
            self._audit(uow, actor, "expense_approved", "Expense", expense.id,
                        before={"approval_status": before},
                        after={"approval_status": expense.approval_status})
            return expense.to_dto()

    def reject_expense(self, actor: Actor, expense_id: UUID, remarks: str | None) -> Expense:
        with self._uow("reject_expense", actor) as uow:
            expense = self._lock(uow, expense_id)
            before = expense.approval_status
            self._approvals.reject(expense, actor, remarks)
            self._audit(uow, actor, "expense_rejected", "Expense", expense.id,
                        before={"approval_status": before},
                        after={"approval_status": expense.approval_status, "remarks": remarks})
            return expense.to_dto()

    def get_expense(self, expense_id: UUID) -> Expense:
        return self._get(ExpenseModel, expense_id, "Expense").to_dto()

    def approval_queue(self, role: Role) -> list[Expense]:
        return [row.to_dto() for row in self._approvals.approval_queue(ExpenseModel, role)]

    def history(self, expense_id: UUID) -> list[ApprovalHistoryEntry]:
        return self._approvals.history(self._get(ExpenseModel, expense_id, "Expense"))

    def totals_by_category(self, start: date | None = None, end: date | None = None) -> dict[str, Decimal]:
        """Approved expense totals per category within an optional date range."""
        stmt = select(ExpenseModel).where(
            ExpenseModel.approval_status == ApprovalStatus.APPROVED.value,
            ExpenseModel.is_deleted.is_(False),
        )
        if start is not None:
            stmt = stmt.where(ExpenseModel.expense_date >= start)
        if end is not None:
            stmt = stmt.where(ExpenseModel.expense_date <= end)
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for expense in self._session.scalars(stmt):
            totals[expense.category] += expense.amount
        return dict(totals)
