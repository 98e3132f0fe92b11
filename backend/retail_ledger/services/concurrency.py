# Overview: Service-layer operations for concurrency; encapsulates locking and retry policy.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrencyConflictError

T = TypeVar("T")

# (store_id, item_id); ordering on this tuple is the global lock order
StockKey = tuple[int, int]


def stock_key(item_id: int, store_id: int) -> StockKey:
    return (store_id, item_id)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    populate_existing() makes sure the row is re-read even if the session
    already holds it in its identity map.
    """
    return query.with_for_update().populate_existing()


class StockLockRegistry:
    """
    One re-entrant lock per (store, item) key.

    Keys are always acquired in ascending (store_id, item_id) order, so two
    multi-key operations sharing keys (opposite-direction transfers, sales
    with overlapping items) cannot deadlock each other.

    Locks are created on first use and never evicted, so the registry grows
    to one lock per (store, item) pair ever touched. That is bounded by the
    number of stock records; do not key it on unbounded values.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[StockKey, threading.RLock] = {}

    def _lock_for(self, key: StockKey) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys: Iterable[StockKey]) -> Iterator[list[StockKey]]:
        ordered = sorted(set(keys))
        acquired: list[threading.RLock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


stock_locks = StockLockRegistry()


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
) -> T:
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and ConcurrencyConflictError raised by
    the operation itself. Exhausted retries surface as
    ConcurrencyConflictError.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF_SECONDS", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, ConcurrencyConflictError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, ConcurrencyConflictError):
                    raise
                raise ConcurrencyConflictError(
                    "Concurrent update conflict; retry the operation",
                    details={"attempts": attempts, "cause": type(exc).__name__},
                ) from exc
            current_app.logger.warning(
                "Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
    raise ConcurrencyConflictError("No attempts were made", details={"attempts": attempts})


def run_locked(keys: Iterable[StockKey], func: Callable[[], T], **retry_kwargs) -> T:
    """
    Run func while holding the stock locks for keys, with retry.

    Every DB read and the commit happen inside the locked region. Any
    failure rolls the session back before the locks are released, so no
    caller ever observes a partial write.
    """
    keys = list(keys)

    def _op():
        with stock_locks.hold(keys):
            try:
                return func()
            except Exception:
                db.session.rollback()
                raise

    return run_with_retry(_op, **retry_kwargs)
