"""Unit of work: one atomic scope around every balance-affecting write"""

import logging
from typing import Any, Callable, List, Tuple

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from household_ledger.config import settings
from household_ledger.domain.exceptions import ConflictError
from household_ledger.infrastructure.observability.metrics import conflict_counter, after_commit_failure_counter

# PostgreSQL: lock_not_available, serialization_failure, deadlock_detected
_CONFLICT_PGCODES = {"55P03", "40001", "40P01"}


def _is_lock_conflict(exc: OperationalError) -> bool:
    return getattr(exc.orig, "pgcode", None) in _CONFLICT_PGCODES


class UnitOfWork:
    """
    Begin an atomic scope, perform writes, commit or roll back on any error.

    Scopes nest: services open one per operation, and when an operation calls
    another (an EMI payment posting through the ledger) only the outermost
    scope commits. Callbacks registered with ``after_commit`` run once the
    outermost commit succeeds and are dropped on rollback.

    Usage:
        uow = UnitOfWork(db)
        with uow:
            ...writes through uow.db...
    """

    def __init__(self, db: Session, lock_timeout_ms: int | None = None):
        self.db = db
        self.lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else settings.lock_timeout_ms
        self._depth = 0
        self._after_commit: List[Tuple[Callable[..., Any], tuple]] = []

    def __enter__(self) -> "UnitOfWork":
        if self._depth == 0 and self.db.get_bind().dialect.name == "postgresql":
            # Bounded wait on row locks; aborts instead of blocking indefinitely
            self.db.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._depth -= 1
        if self._depth > 0:
            return False

        if exc_type is not None:
            self.rollback()
            translated = self._translate(exc)
            if translated is not None:
                raise translated from exc
            return False

        try:
            self.db.commit()
        except (StaleDataError, IntegrityError, OperationalError) as e:
            self.rollback()
            translated = self._translate(e)
            if translated is None:
                raise
            raise translated from e

        self._run_after_commit()
        return False

    def after_commit(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue ``callback(*args)`` to run after the outermost commit; duplicates are queued once"""
        entry = (callback, args)
        if entry not in self._after_commit:
            self._after_commit.append(entry)

    def rollback(self) -> None:
        self._after_commit.clear()
        self.db.rollback()

    def _translate(self, exc: BaseException) -> ConflictError | None:
        if isinstance(exc, StaleDataError):
            conflict_counter.labels(reason="stale_version").inc()
            return ConflictError("Entity was modified concurrently; retry the operation")
        if isinstance(exc, IntegrityError):
            conflict_counter.labels(reason="integrity").inc()
            return ConflictError("Write conflicts with existing data")
        if isinstance(exc, OperationalError) and _is_lock_conflict(exc):
            conflict_counter.labels(reason="lock_timeout").inc()
            return ConflictError("Timed out waiting for a concurrent write; retry the operation")
        return None

    def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback, args in callbacks:
            try:
                callback(*args)
            except Exception:
                # Committed work must not be reported as failed
                after_commit_failure_counter.inc()
                logging.exception("After-commit callback failed", extra={"callback": getattr(callback, "__name__", repr(callback))})
