"""
Deferred Reveal Asset Protocol - Concurrency Utilities

This module provides the per-collection exclusive locks that serialise
read-check-write sequences against a collection's capacity authorities, with
acquisition metrics for monitoring contention.
"""

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, Optional


class ConcurrencyError(Exception):
    """General concurrency operation exception."""
    pass


class LockAcquisitionTimeout(ConcurrencyError):
    """Lock could not be acquired within the timeout."""
    pass


class LockMetrics:
    """Lock performance metrics."""

    def __init__(self):
        self.acquisition_count = 0
        self.contention_count = 0
        self.timeout_count = 0
        self.total_wait_time = 0.0
        self.max_wait_time = 0.0
        self.last_acquisition = None
        self.lock_history = deque(maxlen=100)  # Last 100 lock events

    def record_acquisition(self, wait_time: float, contended: bool) -> None:
        """Record lock acquisition metrics."""
        self.acquisition_count += 1
        self.total_wait_time += wait_time
        self.max_wait_time = max(self.max_wait_time, wait_time)
        self.last_acquisition = datetime.now(timezone.utc)

        if contended:
            self.contention_count += 1

        self.lock_history.append({
            'timestamp': self.last_acquisition,
            'wait_time': wait_time,
            'contended': contended,
            'thread_id': threading.get_ident()
        })

    def record_timeout(self) -> None:
        self.timeout_count += 1

    def get_contention_ratio(self) -> float:
        """Get lock contention ratio."""
        if self.acquisition_count == 0:
            return 0.0
        return self.contention_count / self.acquisition_count

    def get_average_wait_time(self) -> float:
        """Get average wait time."""
        if self.acquisition_count == 0:
            return 0.0
        return self.total_wait_time / self.acquisition_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'acquisitions': self.acquisition_count,
            'contentions': self.contention_count,
            'timeouts': self.timeout_count,
            'contention_ratio': self.get_contention_ratio(),
            'average_wait_time': self.get_average_wait_time(),
            'max_wait_time': self.max_wait_time,
        }


class CollectionLockTable:
    """One re-entrant lock per collection, created on first use."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._table_lock = RLock()
        self._locks: Dict[str, RLock] = {}
        self._metrics: Dict[str, LockMetrics] = {}

    def _get_lock(self, collection_id: str) -> RLock:
        with self._table_lock:
            lock = self._locks.get(collection_id)
            if lock is None:
                lock = RLock()
                self._locks[collection_id] = lock
                self._metrics[collection_id] = LockMetrics()
            return lock

    @contextmanager
    def exclusive(self, collection_id: str, timeout: Optional[float] = None):
        """Hold the collection's lock for the duration of the block."""
        lock = self._get_lock(collection_id)
        metrics = self._metrics[collection_id]
        timeout = self.timeout if timeout is None else timeout

        start_time = time.time()
        contended = not lock.acquire(blocking=False)
        if contended and not lock.acquire(timeout=timeout):
            metrics.record_timeout()
            raise LockAcquisitionTimeout(
                f"Could not lock collection {collection_id} within {timeout} seconds"
            )

        wait_time = time.time() - start_time
        metrics.record_acquisition(wait_time, contended)
        if contended:
            self.logger.debug(f"Lock on {collection_id} acquired after {wait_time:.4f}s")

        try:
            yield
        finally:
            lock.release()

    def get_metrics(self, collection_id: Optional[str] = None) -> Dict[str, Any]:
        """Get lock metrics for one collection or all of them."""
        with self._table_lock:
            if collection_id is not None:
                metrics = self._metrics.get(collection_id)
                return metrics.to_dict() if metrics else {}

            return {cid: m.to_dict() for cid, m in self._metrics.items()}
