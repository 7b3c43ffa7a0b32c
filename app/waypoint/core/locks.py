from __future__ import annotations

import threading
from contextlib import contextmanager

from app.waypoint.core.config import settings
from app.waypoint.core.error_catalog import AppError, ErrorCatalog
from app.waypoint.core.metrics import metrics


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class TransferLockRegistry:
    """Serializes mutations per transfer id within the process.

    Each id gets its own lock, created on first use and dropped once nobody
    holds or waits for it; distinct ids never contend. Row locks taken with
    ``SELECT ... FOR UPDATE`` cover the cross-process case on PostgreSQL.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    def waiting(self, transfer_id: str) -> int:
        with self._guard:
            entry = self._entries.get(str(transfer_id))
            return entry.holders if entry else 0

    @contextmanager
    def hold(self, transfer_id: str, timeout: float | None = None):
        key = str(transfer_id)
        if timeout is None:
            timeout = settings.TRANSFER_LOCK_TIMEOUT_SEC
        with self._guard:
            entry = self._entries.setdefault(key, _LockEntry())
            entry.holders += 1
        acquired = False
        try:
            acquired = entry.lock.acquire(timeout=timeout)
            if not acquired:
                # Gave up while queued: nothing was read or written for this call.
                metrics.increment_lock_wait_timeout()
                raise AppError(ErrorCatalog.LOCK_TIMEOUT, details={"transfer_id": key, "timeout_sec": timeout})
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)


transfer_locks = TransferLockRegistry()
