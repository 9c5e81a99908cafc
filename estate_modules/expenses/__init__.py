"""Operating expenses and their approval."""

from estate_modules.expenses.models import Expense
from estate_modules.expenses.service import ExpenseService

__all__ = ["Expense", "ExpenseService"]
