"""
Racing the final approval of one receipt.

Two second-level approvers act on the same PendingLevel2 receipt from
separate threads and sessions.  The receipt lock must let exactly one of
them approve, and the ledger must carry exactly one Cash/AR pair.
"""

import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from estate_config import EstateSettings
from estate_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from estate_kernel.domain.approval import Actor, ApprovalStatus, Role
from estate_kernel.domain.clock import DeterministicClock
from estate_kernel.domain.ledger import PaymentMethod
from estate_kernel.exceptions import InvalidStateTransitionError
from estate_kernel.selectors.ledger_selector import LedgerSelector
from estate_kernel.services.lock_registry import LockRegistry
from estate_modules.context import EstateContext
from estate_modules.land.service import LandService
from estate_modules.receipts.service import ReceiptService
from estate_modules.sales.service import SalesService

pytestmark = pytest.mark.concurrency


@pytest.fixture
def file_engine(tmp_path):
    init_engine_from_url(f"sqlite+pysqlite:///{tmp_path / 'approval_race.db'}")
    create_tables()
    yield
    drop_tables()
    reset_engine()


@pytest.fixture
def shared_locks():
    return LockRegistry(timeout_seconds=10.0)


def _ctx(session, locks):
    return EstateContext(
        session=session,
        clock=DeterministicClock(),
        settings=EstateSettings(),
        locks=locks,
    )


class TestFinalApprovalRace:
    def test_only_one_approval_posts(self, file_engine, shared_locks):
        admin = Actor(actor_id=uuid4(), role=Role.ADMIN)
        sales_actor = Actor(actor_id=uuid4(), role=Role.SALES)
        manager = Actor(actor_id=uuid4(), role=Role.ACCOUNT_MANAGER)
        approvers = [Actor(actor_id=uuid4(), role=Role.HOF), admin]

        setup = get_session()
        try:
            ctx = _ctx(setup, shared_locks)
            land = LandService(ctx)
            sales = SalesService(ctx)
            receipts = ReceiptService(ctx)
            parcel = land.register_parcel(admin, "P-APR", "Approval Court", Decimal("100"))
            plot = land.create_plot(admin, parcel.id, "Q-1", Decimal("10"))
            client = sales.register_client(sales_actor, "Nasima Akter", phone="01900000000")
            sale = sales.create_sale(
                sales_actor, client.id, plot.id, Decimal("500000"),
                booking_amount=Decimal("50000"), sale_date=date(2024, 1, 15),
            )
            receipt = receipts.create_receipt(sales_actor, sale.id, 50000, PaymentMethod.CASH)
            receipts.submit_receipt(sales_actor, receipt.id)
            pending = receipts.approve_receipt(manager, receipt.id)
        finally:
            setup.close()
        assert pending.approval_status == ApprovalStatus.PENDING_LEVEL2

        barrier = threading.Barrier(len(approvers))
        approved: list[Role] = []
        refused: list[Role] = []
        unexpected: list[Exception] = []
        results_lock = threading.Lock()

        def approve(actor: Actor) -> None:
            session = get_session()
            try:
                barrier.wait(timeout=10)
                ReceiptService(_ctx(session, shared_locks)).approve_receipt(actor, receipt.id)
                with results_lock:
                    approved.append(actor.role)
            except InvalidStateTransitionError:
                with results_lock:
                    refused.append(actor.role)
            except Exception as exc:  # surfaced by the assertion below
                with results_lock:
                    unexpected.append(exc)
            finally:
                session.close()

        threads = [threading.Thread(target=approve, args=(a,)) for a in approvers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert unexpected == []
        assert len(approved) == 1
        assert len(refused) == 1

        check = get_session()
        try:
            entries = LedgerSelector(check).entries_for_reference(receipt.id)
            final = SalesService(_ctx(check, shared_locks)).get_sale(sale.id)
        finally:
            check.close()
        assert [(e.account_name, e.debit, e.credit) for e in entries] == [
            ("Cash", Decimal("50000"), Decimal("0")),
            ("Accounts Receivable - Clients", Decimal("0"), Decimal("50000")),
        ]
        assert final.paid_amount == Decimal("50000")
