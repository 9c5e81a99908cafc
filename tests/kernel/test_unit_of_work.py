"""
Tests for the UnitOfWork boundary.

Covers:
- Commit on success, rollback on error
- Nested units of work join the outermost one
- Events dispatched only after commit; failing sinks are logged and dropped
- Store error translation
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from estate_kernel.domain.events import NotificationEvent, NotificationKind
from estate_kernel.exceptions import (
    ConflictError,
    LockTimeoutError,
    OptimisticLockError,
    TransientStoreFailure,
)
from estate_kernel.services.lock_registry import LockRegistry
from estate_kernel.services.sequence_service import SequenceService
from estate_kernel.services.unit_of_work import UnitOfWork


def _event(reference="RCP-2024-01-00001"):
    return NotificationEvent(
        kind=NotificationKind.PAYMENT_CONFIRMED,
        phone="01700000000",
        name="Rahim Uddin",
        amount=Decimal("100"),
        reference=reference,
    )


class ExplodingNotifier:
    def notify(self, event):
        raise RuntimeError("sms gateway down")


@pytest.fixture
def locks():
    return LockRegistry(timeout_seconds=0.5)


class TestCommitAndRollback:
    def test_commit_on_success(self, session, locks):
        with UnitOfWork(session, locks, "allocate"):
            SequenceService(session).next_value("SAL-2024-01")
        assert SequenceService(session).current_value("SAL-2024-01") == 1

    def test_rollback_on_error(self, session, locks, captured_logs):
        with pytest.raises(ValueError):
            with UnitOfWork(session, locks, "allocate"):
                SequenceService(session).next_value("SAL-2024-01")
                raise ValueError("boom")
        assert SequenceService(session).current_value("SAL-2024-01") is None
        rolled_back = [r for r in captured_logs() if r["message"] == "unit_of_work_rolled_back"]
        assert rolled_back[0]["operation"] == "allocate"


class TestNesting:
    def test_inner_joins_outer(self, session, locks, notifier):
        with UnitOfWork(session, locks, "outer", notifier=notifier) as outer:
            with UnitOfWork(session, locks, "inner", notifier=notifier) as inner:
                assert not inner.is_root
                inner.notify(_event())
            assert outer.is_root
            assert notifier.events == []
        assert len(notifier.events) == 1

    def test_inner_failure_rolls_back_outer(self, session, locks):
        with pytest.raises(ValueError):
            with UnitOfWork(session, locks, "outer"):
                SequenceService(session).next_value("RCP-2024-01")
                with UnitOfWork(session, locks, "inner"):
                    raise ValueError("inner failed")
        assert SequenceService(session).current_value("RCP-2024-01") is None

    def test_inner_lock_held_until_outer_exits(self, session, locks):
        outcome = {}

        def contender():
            try:
                with locks.hold("sale", "S-1", timeout=0.05):
                    outcome["acquired"] = True
            except LockTimeoutError:
                outcome["acquired"] = False

        with UnitOfWork(session, locks, "outer"):
            with UnitOfWork(session, locks, "inner") as inner:
                inner.lock("sale", "S-1")
            thread = threading.Thread(target=contender)
            thread.start()
            thread.join()
        assert outcome["acquired"] is False

        thread = threading.Thread(target=contender)
        thread.start()
        thread.join()
        assert outcome["acquired"] is True


class TestEvents:
    def test_no_events_on_rollback(self, session, locks, notifier, audit_sink):
        with pytest.raises(ValueError):
            with UnitOfWork(session, locks, "op", notifier=notifier, audit=audit_sink) as uow:
                uow.notify(_event())
                raise ValueError("boom")
        assert notifier.events == []
        assert audit_sink.records == []

    def test_failing_sink_does_not_undo_commit(self, session, locks, captured_logs):
        with UnitOfWork(session, locks, "op", notifier=ExplodingNotifier()) as uow:
            SequenceService(session).next_value("EXP-2024-01")
            uow.notify(_event())
        assert SequenceService(session).current_value("EXP-2024-01") == 1
        failed = [r for r in captured_logs() if r["message"] == "notification_dispatch_failed"]
        assert failed[0]["reference"] == "RCP-2024-01-00001"
        assert failed[0]["exc_type"] == "RuntimeError"


class TestErrorTranslation:
    def test_integrity_error_is_conflict(self, session, locks):
        with pytest.raises(ConflictError):
            with UnitOfWork(session, locks, "op"):
                raise IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed"))

    def test_stale_data_is_optimistic_lock(self, session, locks):
        with pytest.raises(OptimisticLockError) as exc:
            with UnitOfWork(session, locks, "op"):
                raise StaleDataError("version mismatch")
        assert exc.value.retryable

    def test_operational_error_is_transient(self, session, locks):
        with pytest.raises(TransientStoreFailure) as exc:
            with UnitOfWork(session, locks, "op"):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        assert exc.value.code == "TRANSIENT_STORE_FAILURE"

    def test_domain_errors_pass_through(self, session, locks):
        with pytest.raises(KeyError):
            with UnitOfWork(session, locks, "op"):
                raise KeyError("x")
