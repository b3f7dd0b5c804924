from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Event, Lock
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import BatchInProgressError

logger = logging.getLogger(__name__)

# Namespace for pg advisory locks taken by the scheduler (first key of the pair).
ADVISORY_LOCK_NAMESPACE = 7301


class SemesterLockRegistry:
    """Process-wide set of semesters with a batch in flight."""

    def __init__(self) -> None:
        self._held: set[int] = set()
        self._lock = Lock()

    def try_acquire(self, semester_id: int) -> bool:
        with self._lock:
            if semester_id in self._held:
                return False
            self._held.add(semester_id)
            return True

    def release(self, semester_id: int) -> None:
        with self._lock:
            self._held.discard(semester_id)

    def is_held(self, semester_id: int) -> bool:
        with self._lock:
            return semester_id in self._held

    def clear(self) -> None:
        with self._lock:
            self._held.clear()


class CancellationRegistry:
    """Cooperative cancellation flags keyed by batch id."""

    def __init__(self) -> None:
        self._flags: dict[str, Event] = {}
        self._semesters: dict[str, int] = {}
        self._lock = Lock()

    def register(self, batch_id: str, semester_id: int) -> None:
        with self._lock:
            self._flags.setdefault(batch_id, Event())
            self._semesters[batch_id] = semester_id

    def request_cancel(self, batch_id: str) -> bool:
        with self._lock:
            flag = self._flags.get(batch_id)
        if flag is None:
            return False
        flag.set()
        return True

    def is_cancelled(self, batch_id: str) -> bool:
        with self._lock:
            flag = self._flags.get(batch_id)
        return flag is not None and flag.is_set()

    def release(self, batch_id: str) -> None:
        with self._lock:
            self._flags.pop(batch_id, None)
            self._semesters.pop(batch_id, None)

    def active_for_semester(self, semester_id: int) -> list[str]:
        with self._lock:
            return [batch_id for batch_id, owner in self._semesters.items() if owner == semester_id]

    def clear(self) -> None:
        with self._lock:
            self._flags.clear()
            self._semesters.clear()


_semester_locks = SemesterLockRegistry()
_cancellations = CancellationRegistry()


def _uses_advisory_lock(db: Session) -> bool:
    if not get_settings().batch_lock_use_database:
        return False
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


@contextmanager
def semester_lock(db: Session, semester_id: int) -> Iterator[None]:
    """Hold the per-semester batch lock; raise BatchInProgressError if taken.

    The in-process registry covers one worker. On PostgreSQL a
    transaction-scoped advisory lock extends the guarantee across workers;
    the batch's commit or rollback releases it, so it never outlives the
    transaction even when the connection goes back to the pool.
    """
    if not _semester_locks.try_acquire(semester_id):
        raise BatchInProgressError(semester_id)

    try:
        if _uses_advisory_lock(db):
            acquired = db.execute(
                text("SELECT pg_try_advisory_xact_lock(:namespace, :semester_id)"),
                {"namespace": ADVISORY_LOCK_NAMESPACE, "semester_id": semester_id},
            ).scalar()
            if not acquired:
                raise BatchInProgressError(semester_id)
        yield
    finally:
        _semester_locks.release(semester_id)


def is_semester_locked(semester_id: int) -> bool:
    return _semester_locks.is_held(semester_id)


def register_batch(batch_id: str, semester_id: int) -> None:
    _cancellations.register(batch_id, semester_id)


def request_cancel(batch_id: str) -> bool:
    cancelled = _cancellations.request_cancel(batch_id)
    if cancelled:
        logger.info("Cancellation requested for batch %s", batch_id)
    return cancelled


def is_cancelled(batch_id: str) -> bool:
    return _cancellations.is_cancelled(batch_id)


def release_batch(batch_id: str) -> None:
    _cancellations.release(batch_id)


def active_batches(semester_id: int) -> list[str]:
    return _cancellations.active_for_semester(semester_id)


def clear_batch_control() -> None:
    _semester_locks.clear()
    _cancellations.clear()
