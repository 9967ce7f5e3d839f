"""
Transaction nesting on top of a single connection.

States: idle (level 0) and active (level >= 1).

- begin:    level += 1, physical BEGIN only when the prior level was 0
- commit:   rejected at level 0; otherwise level -= 1, physical COMMIT only
            when the resulting level is 0
- rollback: level forced to 0, physical ROLLBACK iff the connection reports
            an open transaction

A rollback raised out of a nested `Database.transaction()` block leaves the
enclosing blocks rollback-only: their statements and commits are refused
until the outermost block has exited, so nothing they do can be persisted
by autocommit.

The state also owns a re-entrant lock. It is held from the outermost begin to
the matching commit/rollback, and the executor takes it around every
statement, so threads that share one Database are serialized instead of
interleaving statements on the same connection.
"""

import contextvars
import logging
import threading
import time
import uuid
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions.base import TransactionError
from ..exceptions.mapper import build_database_error

if TYPE_CHECKING:
    from .connection import ConnectionManager

logger = logging.getLogger(__name__)

_transaction_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "transaction_id", default=None
)


def get_transaction_id() -> str | None:
    """Identifier of the physical transaction open in this context, if any."""
    return _transaction_id_ctx.get()


class TransactionState:
    def __init__(self, manager: "ConnectionManager"):
        self._manager = manager
        self._level = 0
        self._lock = threading.RLock()
        self._held = 0
        self._started_at: float | None = None
        self._token: contextvars.Token | None = None
        self._rollback_only = 0
        self.physical_begins = 0
        self.physical_commits = 0
        self.physical_rollbacks = 0

    @property
    def level(self) -> int:
        return self._level

    @property
    def active(self) -> bool:
        return self._level > 0

    @property
    def rollback_only(self) -> bool:
        """True while enclosing scopes of a rolled-back transaction are still open."""
        return self._rollback_only > 0

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def begin(self) -> None:
        self._lock.acquire()
        self._held += 1
        try:
            if self._rollback_only:
                raise TransactionError(
                    "begin() refused: the enclosing transaction was rolled back",
                    context={"operation": "begin", "rollback_only": True},
                )
            if self._level == 0:
                connection = self._manager.get_connection()
                try:
                    if connection.in_transaction():
                        # leftover implicit transaction from autobegin
                        connection.commit()
                    connection.begin()
                except SQLAlchemyError as exc:
                    raise build_database_error(
                        exc,
                        message="Failed to begin transaction",
                        context={"operation": "begin"},
                    ) from exc
                self.physical_begins += 1
                self._started_at = time.perf_counter()
                self._token = _transaction_id_ctx.set(uuid.uuid4().hex[:12])
                logger.debug("db.transaction.begin", extra={"level": 1})
            self._level += 1
        except BaseException:
            self._release(1)
            raise

    def commit(self) -> None:
        with self._lock:
            if self._level == 0:
                if self._rollback_only:
                    raise TransactionError(
                        "commit() refused: the transaction was rolled back by an inner scope",
                        context={"operation": "commit", "level": 0, "rollback_only": True},
                    )
                raise TransactionError(
                    "commit() called with no active transaction",
                    context={"operation": "commit", "level": 0},
                )
            self._level -= 1
            try:
                if self._level == 0:
                    connection = self._manager.get_connection()
                    try:
                        connection.commit()
                    except SQLAlchemyError as exc:
                        raise build_database_error(
                            exc,
                            message="Failed to commit transaction",
                            context={"operation": "commit"},
                        ) from exc
                    self.physical_commits += 1
                    logger.debug(
                        "db.transaction.commit",
                        extra={"duration_ms": self._elapsed_ms()},
                    )
                    self._clear_transaction_id()
            finally:
                self._release(1)

    def rollback(self, scoped: bool = False) -> None:
        """
        Roll back the physical transaction and reset the level to 0.

        With `scoped=True` (a `Database.transaction()` block unwinding) the
        enclosing scopes that are still running stay rollback-only: their
        statements and commits are refused until each of them has exited.
        A plain rollback clears that state.
        """
        with self._lock:
            if scoped and self._level == 0 and self._rollback_only:
                self._rollback_only -= 1
                self._release(min(1, self._held))
                return

            held, self._level = self._level, 0
            try:
                connection = self._manager.current_connection()
                if connection is not None and connection.in_transaction():
                    try:
                        connection.rollback()
                    except SQLAlchemyError as exc:
                        raise TransactionError(
                            "Failed to roll back transaction",
                            context={"operation": "rollback"},
                        ) from exc
                    self.physical_rollbacks += 1
                    logger.debug(
                        "db.transaction.rollback",
                        extra={"duration_ms": self._elapsed_ms(), "nesting": held},
                    )
            finally:
                self._clear_transaction_id()
                if scoped and held > 1:
                    self._rollback_only = held - 1
                    self._release(1)
                else:
                    self._rollback_only = 0
                    self._release(self._held)

    def _release(self, count: int) -> None:
        for _ in range(count):
            self._held -= 1
            self._lock.release()

    def _elapsed_ms(self) -> int | None:
        if self._started_at is None:
            return None
        return int((time.perf_counter() - self._started_at) * 1000)

    def _clear_transaction_id(self) -> None:
        if self._token is not None:
            try:
                _transaction_id_ctx.reset(self._token)
            except ValueError:
                # token created in another context
                _transaction_id_ctx.set(None)
            self._token = None
        self._started_at = None


__all__ = ["TransactionState", "get_transaction_id"]
