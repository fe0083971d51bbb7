# Overview: Locking and retry helpers shared by every ledger service.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    In-process serialization for SQLite comes from hold_keys().
    """
    return query.with_for_update()


class KeyedLocks:
    """
    One lock per entity key, e.g. ("product", 7) or ("wallet", 3).

    Operations on different keys proceed concurrently; operations on the
    same key serialize. Multi-key callers acquire in sorted order so two
    overlapping composite operations cannot deadlock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple, threading.RLock] = {}

    def _lock_for(self, key: tuple) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: tuple):
        ordered = sorted(set(keys), key=lambda k: (str(k[0]), str(k[1])))
        acquired = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def init_keyed_locks(app) -> KeyedLocks:
    """Attach a fresh registry to the app so each app instance serializes independently."""
    locks = KeyedLocks()
    app.extensions["keyed_locks"] = locks
    return locks


def hold_keys(*keys: tuple):
    """Serialize on the given entity keys for the current app."""
    return current_app.extensions["keyed_locks"].hold(*keys)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates, so a failed composite write leaves nothing behind.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency conflict (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
