# Overview: Locking and retry helpers that keep per-product stock updates linearizable.

from __future__ import annotations

import threading
import time
from contextlib import ExitStack, contextmanager
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class ProductLockArena:
    """
    Re-entrant in-process locks keyed by product id.

    Multi-product holders acquire in ascending id order so two carts with
    overlapping products cannot deadlock. Re-entrancy lets a caller that
    already holds a product (e.g. shrinkage clamping) call into the ledger.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}

    def _lock_for(self, product_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_ids: Iterable[int]):
        with ExitStack() as stack:
            for product_id in sorted(set(product_ids)):
                lock = self._lock_for(product_id)
                lock.acquire()
                stack.callback(lock.release)
            yield


product_locks = ProductLockArena()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the in-process arena above
    covers it there, other DBs honour the row lock as well.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other failure rolls the session
    back before propagating, so no partial write survives.
    """
    if attempts is None:
        attempts = current_app.config.get("LOCK_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Retrying after concurrency conflict (attempt %s)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
