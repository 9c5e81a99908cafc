"""
DailySweep -- the periodic jobs, run in order.

1. Recompute every open sale so lapsed stage dates turn Overdue.
2. Reclassify installment lines (Overdue / Missed) and notify on misses.
3. Queue "installment due" reminders.
4. Queue "refund due" reminders.
5. Age open cheques (Due Today / Overdue) and queue "cheque due" reminders.

Each sale refresh is its own unit of work; a failure is logged and counted
and the sweep moves on.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from estate_kernel.exceptions import EstateError
from estate_kernel.logging_config import LogContext, get_logger
from estate_modules.base import SYSTEM_ACTOR
from estate_modules.cancellations.service import CancellationService
from estate_modules.cheques.service import ChequeService
from estate_modules.context import EstateContext
from estate_modules.installments.service import InstallmentService
from estate_modules.sales.service import SalesService

logger = get_logger("modules.sweeps")


@dataclass
class SweepResult:
    sales_refreshed: int = 0
    sales_failed: int = 0
    lines_changed: int = 0
    installment_reminders: int = 0
    refund_reminders: int = 0
    cheques_changed: int = 0
    cheque_reminders: int = 0
    errors: list[str] = field(default_factory=list)


class DailySweep:
    def __init__(self, ctx: EstateContext):
        self._ctx = ctx

    def run(self) -> SweepResult:
        result = SweepResult()
        with LogContext.bind(operation="daily_sweep"):
            sales = SalesService(self._ctx)
            for sale_id in sales.open_sale_ids():
                try:
                    sales.refresh_stage_statuses(SYSTEM_ACTOR, sale_id)
                    result.sales_refreshed += 1
                except EstateError as exc:
                    result.sales_failed += 1
                    result.errors.append(f"{sale_id}: {exc.code}")
                    logger.warning(
                        "sweep_sale_refresh_failed",
                        extra={"sale_id": str(sale_id), "error_code": exc.code},
                    )

            installments = InstallmentService(self._ctx)
            result.lines_changed = len(installments.sweep_overdue())
            result.installment_reminders = len(installments.due_reminders())
            result.refund_reminders = len(CancellationService(self._ctx).due_refunds())

            cheques = ChequeService(self._ctx)
            result.cheques_changed = len(cheques.sweep_statuses())
            result.cheque_reminders = len(cheques.due_reminders())

            logger.info(
                "daily_sweep_completed",
                extra={
                    "sales_refreshed": result.sales_refreshed,
                    "sales_failed": result.sales_failed,
                    "lines_changed": result.lines_changed,
                    "installment_reminders": result.installment_reminders,
                    "refund_reminders": result.refund_reminders,
                    "cheques_changed": result.cheques_changed,
                    "cheque_reminders": result.cheque_reminders,
                },
            )
        return result
