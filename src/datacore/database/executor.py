"""
Statement execution with timing, per-kind counters and sanitized logging.

Every statement issued by a repository goes through `StatementExecutor.execute`.
The executor:

- fetches the live connection from the ConnectionManager,
- runs the statement and materializes the result (rows, rowcount, ids),
- commits immediately when no repository transaction is open,
- adds the elapsed time to QueryStats under the statement kind,
- logs the statement at DEBUG (or ERROR on failure) with parameters passed
  through `sanitize_params`,
- translates driver failures into classified DatabaseError instances.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence, TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.sql import ClauseElement, Executable

from ..exceptions.base import TransactionError
from ..exceptions.mapper import build_database_error
from ..utils.masking import sanitize_params

if TYPE_CHECKING:
    from .connection import ConnectionManager
    from .transaction import TransactionState

logger = logging.getLogger(__name__)


class StatementKind(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    COUNT = "count"

    @property
    def bucket(self) -> str:
        # count-style reads are reported as selects
        return "select" if self is StatementKind.COUNT else self.value


@dataclass
class QueryStats:
    select: int = 0
    insert: int = 0
    update: int = 0
    delete: int = 0
    total_time: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, kind: StatementKind, elapsed: float) -> None:
        with self._lock:
            bucket = kind.bucket
            setattr(self, bucket, getattr(self, bucket) + 1)
            self.total_time += elapsed

    def reset(self) -> None:
        with self._lock:
            self.select = self.insert = self.update = self.delete = 0
            self.total_time = 0.0

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "select": self.select,
                "insert": self.insert,
                "update": self.update,
                "delete": self.delete,
                "total_time": self.total_time,
            }


@dataclass(frozen=True)
class StatementResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = -1
    lastrowid: int | None = None
    primary_key: tuple[Any, ...] | None = None
    elapsed_ms: float = 0.0

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        if not self.rows:
            return None
        return next(iter(self.rows[0].values()), None)

    def column(self, name: str) -> list[Any]:
        return [row[name] for row in self.rows]


def _statement_text(statement: Executable, dialect=None) -> str:
    try:
        if dialect is not None and isinstance(statement, ClauseElement):
            return str(statement.compile(dialect=dialect))
        return str(statement)
    except SQLAlchemyError:
        return statement.__class__.__name__


def _bound_params(statement: Executable, params: Any, dialect=None) -> Any:
    if params is not None:
        return params
    if isinstance(statement, ClauseElement):
        try:
            return statement.compile(dialect=dialect).params
        except SQLAlchemyError:
            return None
    return None


class StatementExecutor:
    def __init__(self, manager: "ConnectionManager", transactions: "TransactionState"):
        self._manager = manager
        self._transactions = transactions
        self.stats = QueryStats()

    @property
    def dialect(self):
        return self._manager.dialect

    def supports_multirow_returning(self) -> bool:
        """True when one multi-row INSERT ... VALUES can report its generated keys via RETURNING."""
        dialect = self.dialect
        return bool(
            dialect is not None
            and getattr(dialect, "insert_returning", False)
            and getattr(dialect, "supports_multivalues_insert", False)
        )

    def execute(
        self,
        statement: Executable | str,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
        kind: StatementKind | str = StatementKind.SELECT,
        *,
        want_primary_key: bool = False,
        execution_options: Mapping[str, Any] | None = None,
    ) -> StatementResult:
        """
        Execute `statement` and return its materialized result.

        Args:
            statement: SQLAlchemy executable, or a raw SQL string with
                `:name` placeholders.
            params: bind values; a list of mappings runs as executemany.
            kind: statement kind used for QueryStats.
            want_primary_key: capture `inserted_primary_key` (single-row INSERT).
            execution_options: per-statement SQLAlchemy execution options.

        Raises:
            DatabaseError: classified driver failure.
        """
        kind = StatementKind(kind)
        if isinstance(statement, str):
            statement = text(statement)
        if execution_options:
            statement = statement.execution_options(**execution_options)

        with self._transactions.lock:
            if self._transactions.rollback_only:
                raise TransactionError(
                    "Statement refused: the enclosing transaction was rolled back",
                    context={"kind": kind.value, "rollback_only": True},
                )
            connection = self._manager.get_connection()
            dialect = connection.dialect
            start = time.perf_counter()
            try:
                if isinstance(params, (list, tuple)):
                    result = connection.execute(statement, list(params))
                elif params:
                    result = connection.execute(statement, dict(params))
                else:
                    result = connection.execute(statement)
                outcome = self._materialize(result, kind, want_primary_key, start)
                if not self._transactions.active:
                    connection.commit()
            except SQLAlchemyError as exc:
                elapsed = time.perf_counter() - start
                self.stats.record(kind, elapsed)
                raise self._failure(exc, statement, params, kind, elapsed, connection) from exc

            self.stats.record(kind, outcome.elapsed_ms / 1000)

        logger.debug(
            "db.statement.ok",
            extra={
                "kind": kind.value,
                "sql": _statement_text(statement, dialect),
                "params": sanitize_params(_bound_params(statement, params, dialect)),
                "rowcount": outcome.rowcount,
                "elapsed_ms": round(outcome.elapsed_ms, 3),
            },
        )
        return outcome

    def _materialize(self, result, kind: StatementKind, want_primary_key: bool, start: float) -> StatementResult:
        rows: list[dict[str, Any]] = []
        if result.returns_rows and not want_primary_key:
            rows = [dict(row) for row in result.mappings().all()]

        lastrowid = None
        primary_key = None
        if kind is StatementKind.INSERT and not rows:
            lastrowid = getattr(result, "lastrowid", None)
        if want_primary_key:
            primary_key = tuple(result.inserted_primary_key or ())

        return StatementResult(
            rows=rows,
            rowcount=result.rowcount if result.rowcount is not None else -1,
            lastrowid=lastrowid,
            primary_key=primary_key,
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )

    def _failure(self, exc: SQLAlchemyError, statement, params, kind: StatementKind,
                 elapsed: float, connection):
        dialect = getattr(connection, "dialect", None)
        sql = _statement_text(statement, dialect)
        safe_params = sanitize_params(_bound_params(statement, params, dialect))

        if isinstance(exc, DBAPIError) and exc.connection_invalidated:
            self._manager.invalidate()
        elif not self._transactions.active:
            try:
                if connection.in_transaction():
                    connection.rollback()
            except SQLAlchemyError:
                logger.exception("db.statement.rollback_failed", extra={"kind": kind.value})

        error = build_database_error(
            exc,
            context={"sql": sql, "params": safe_params, "kind": kind.value},
        )
        logger.error(
            "db.statement.failed",
            extra={
                "kind": kind.value,
                "sql": sql,
                "params": safe_params,
                "error_kind": error.kind.value,
                "sql_state": error.context.get("sql_state"),
                "error_message": error.context.get("original_message"),
                "elapsed_ms": round(elapsed * 1000, 3),
            },
        )
        return error

    def get_query_stats(self) -> dict[str, Any]:
        return self.stats.as_dict()

    def reset_query_stats(self) -> None:
        self.stats.reset()


__all__ = ["StatementKind", "QueryStats", "StatementResult", "StatementExecutor"]
