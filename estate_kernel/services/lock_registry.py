"""
LockRegistry -- in-process mutexes keyed by entity.

Responsibility:
    Serializes read-check-write sequences on one LandParcel or one
    approvable document within this process.  Locks are taken through a
    UnitOfWork and released only after it commits or rolls back, so the
    next holder always reads committed state.

Failure modes:
    - LockTimeoutError (retryable) when a lock is not acquired within the
      configured timeout.  Acquisition never blocks indefinitely.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from estate_kernel.exceptions import LockTimeoutError
from estate_kernel.logging_config import get_logger

logger = get_logger("services.locks")


class LockRegistry:
    def __init__(self, timeout_seconds: float = 5.0):
        self._timeout = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    @staticmethod
    def key(entity_type: str, entity_id: object) -> str:
        return f"{entity_type}:{entity_id}"

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, entity_type: str, entity_id: object, timeout: float | None = None) -> Iterator[str]:
        key = self.key(entity_type, entity_id)
        wait = self._timeout if timeout is None else timeout
        lock = self._lock_for(key)
        if not lock.acquire(timeout=wait):
            logger.warning("entity_lock_timeout", extra={"lock_key": key, "timeout": wait})
            raise LockTimeoutError(key, wait)
        try:
            yield key
        finally:
            lock.release()


# Shared by every EstateContext in the process unless one is injected.
default_lock_registry = LockRegistry()
