"""
Reporting reads over sales, installments and the ledger.

Read-only: nothing here adds, flushes or commits.  Receivables are aged by
each sale's oldest unpaid installment; a sale without a schedule ages from
the earliest expected date of an unpaid stage.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from estate_engines.aging import AgingReport, ReceivableItem, age_receivables
from estate_engines.installment_schedule import InstallmentStatus
from estate_kernel.selectors.base import BaseSelector
from estate_modules.installments.orm import InstallmentLineModel
from estate_modules.sales.models import SaleStatus
from estate_modules.sales.orm import ClientModel, SaleModel

ZERO = Decimal("0")


class ReportingSelector(BaseSelector):
    def _oldest_unpaid_due(self, sale: SaleModel) -> date | None:
        oldest = self.session.scalar(
            select(InstallmentLineModel.due_date)
            .where(
                InstallmentLineModel.sale_id == sale.id,
                InstallmentLineModel.status != InstallmentStatus.PAID.value,
            )
            .order_by(InstallmentLineModel.due_date)
            .limit(1)
        )
        if oldest is not None:
            return oldest
        pending = [
            stage.expected_date
            for stage in sale.stages
            if stage.expected_date is not None and stage.received_amount < stage.planned_amount
        ]
        return min(pending) if pending else None

    def receivables(self) -> list[ReceivableItem]:
        rows = self.session.execute(
            select(SaleModel, ClientModel)
            .join(ClientModel, ClientModel.id == SaleModel.client_id)
            .where(
                SaleModel.status.in_([SaleStatus.ACTIVE.value, SaleStatus.ON_HOLD.value]),
                SaleModel.due_amount > ZERO,
            )
            .order_by(SaleModel.sale_number)
        ).all()
        return [
            ReceivableItem(
                sale_id=sale.id,
                sale_number=sale.sale_number,
                client_id=client.id,
                client_name=client.name,
                outstanding=sale.due_amount,
                oldest_unpaid_due=self._oldest_unpaid_due(sale),
            )
            for sale, client in rows
        ]

    def aging_report(self, as_of: date) -> AgingReport:
        return age_receivables(items=self.receivables(), as_of=as_of)
