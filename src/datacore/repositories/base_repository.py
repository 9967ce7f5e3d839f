"""
Base repository class providing common database operations.

This class is the reusable foundation for every table-backed repository. It
works on plain dicts (one dict per row) and SQLAlchemy Core statements built
from the repository's TableSchema, so column and table names never come from
caller input: only values are bound as parameters.

What it provides:
  - create / batch_create with fillable filtering and audit timestamps
  - update / batch_update / delete / batch_delete, with a hard guard against
    condition-less batch writes
  - equality-filtered finders with ordering, limit and offset
  - soft delete as a capability flag (rows with a non-null `deleted_at` are
    hidden unless the caller passes include_deleted=True)
  - nested transactions through the shared Database handle

Domain repositories subclass it and pass their schema:

    class RiskRepository(BaseRepository):
        def __init__(self, db: Database):
            super().__init__(RISK_SCHEMA, db)
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence, TypeVar

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.sql import ColumnElement, Delete, Select, Update

from ..database.executor import StatementKind, StatementResult
from ..database.schema import DELETED_AT, UPDATED_AT, CREATED_AT, TableSchema
from ..database.session import Database
from ..exceptions.base import (
    DatabaseError,
    DataNotFoundError,
    InvalidInputError,
    UnknownDatabaseError,
)
from ..utils.masking import mask_sensitive

logger = logging.getLogger(__name__)

T = TypeVar("T")

Record = dict[str, Any]
Conditions = Mapping[str, Any]

SORT_DIRECTIONS = ("ASC", "DESC")


def _is_integer(column) -> bool:
    try:
        return column.type.python_type is int
    except NotImplementedError:
        return False


def utcnow() -> datetime:
    """Naive UTC timestamp with second precision (what DATETIME columns store)."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def sanitize_direction(direction: Any) -> str:
    """Return 'ASC' or 'DESC'; anything else falls back to 'ASC'."""
    value = str(direction or "").strip().upper()
    return value if value in SORT_DIRECTIONS else "ASC"


class BaseRepository:
    """
    Generic repository over one table.

    Args:
        schema: TableSchema describing the table, fillable whitelist and
            capability flags (soft delete, timestamps).
        db: the shared Database handle (connection, transactions, stats).
        clock: callable returning the timestamp used for audit columns.
    """

    def __init__(self, schema: TableSchema, db: Database, *, clock: Callable[[], datetime] = utcnow):
        self.schema = schema
        self.db = db
        self._clock = clock
        self.initialize_repository()

    def initialize_repository(self) -> None:
        """Hook for subclasses that need extra setup after construction."""

    @property
    def table_name(self) -> str:
        return self.schema.name

    def describe(self) -> dict[str, bool]:
        """Schema descriptor: field name -> fillable?"""
        return self.schema.fields()

    # ==========================================================================
    # Internal helpers
    # ==========================================================================

    def _execute(self, statement, kind: StatementKind, params=None, **kwargs) -> StatementResult:
        return self.db.executor.execute(statement, params, kind, **kwargs)

    @contextmanager
    def _annotate(self, operation: str, **context: Any) -> Iterator[None]:
        """Attach table/operation/ids to any DatabaseError raised inside the block."""
        try:
            yield
        except DatabaseError as exc:
            safe = {k: (mask_sensitive(v) if isinstance(v, Mapping) else v) for k, v in context.items()}
            exc.with_context(table=self.table_name, operation=operation, **safe)
            logger.info(
                f"repo.{operation}.failed",
                extra={"table": self.table_name, "operation": operation, "error_kind": exc.kind.value},
            )
            raise

    def _prepare_write(self, data: Mapping[str, Any], enforce_whitelist: bool, operation: str) -> Record:
        """
        Reduce `data` to what may be written.

        With the whitelist enforced, non-fillable keys are dropped silently
        (debug-logged). Without it, every key must still be a real column.
        """
        if not isinstance(data, Mapping):
            raise InvalidInputError(
                f"{operation} expects a mapping of column -> value",
                context={"table": self.table_name, "operation": operation},
            )

        if enforce_whitelist:
            record, dropped = self.schema.split_fillable(dict(data))
            if dropped:
                logger.debug(
                    f"repo.{operation}.dropped_fields",
                    extra={"table": self.table_name, "operation": operation, "dropped_fields": sorted(dropped)},
                )
            return record

        record = dict(data)
        self.schema.check_known(record)
        return record

    def _stamp_create(self, record: Record, now: datetime) -> None:
        if self.schema.has_created_at:
            record.setdefault(CREATED_AT, now)
        if self.schema.has_updated_at:
            record.setdefault(UPDATED_AT, now)

    def _stamp_update(self, record: Record, now: datetime) -> None:
        if self.schema.has_updated_at:
            record.setdefault(UPDATED_AT, now)

    def _where(self, conditions: Conditions | None) -> list[ColumnElement]:
        """AND-combined equality filters; a None value means IS NULL."""
        if not conditions:
            return []
        self.schema.check_known(conditions)
        clauses = []
        for name, value in conditions.items():
            column = self.schema.column(name)
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses

    def _apply_soft_delete(self, stmt: Select, include_deleted: bool) -> Select:
        if self.schema.soft_delete and not include_deleted:
            stmt = stmt.where(self.schema.column(DELETED_AT).is_(None))
        return stmt

    def _apply_limit(self, stmt: Update | Delete, where: list[ColumnElement], limit: int) -> Update | Delete:
        """
        Restrict a batch UPDATE/DELETE to `limit` rows.

        MySQL supports `UPDATE ... LIMIT n` directly; elsewhere the rows are
        picked through a primary-key sub-select.
        """
        if limit <= 0:
            return stmt
        if self.db.executor.dialect.name == "mysql":
            return stmt.with_dialect_options(mysql_limit=limit)
        pk = self.schema.pk_column
        picked = select(pk).where(*where).limit(limit).correlate(None)
        return stmt.where(pk.in_(picked))

    def _select_columns(self, columns: Sequence[str] | None) -> list:
        if not columns or list(columns) == ["*"]:
            return [self.schema.table]
        self.schema.check_known(columns)
        return [self.schema.column(name) for name in columns]

    def _require_conditions(self, conditions: Conditions | None, operation: str) -> None:
        if not conditions:
            logger.warning(
                f"repo.{operation}.missing_conditions",
                extra={"table": self.table_name, "operation": operation},
            )
            raise InvalidInputError(
                f"{operation} requires at least one condition",
                context={"table": self.table_name, "operation": operation},
            )

    # ==========================================================================
    # Create
    # ==========================================================================

    def create(self, data: Mapping[str, Any], enforce_whitelist: bool = True) -> Any:
        """
        Insert one row and return its primary key.

        Args:
            data: column -> value.
            enforce_whitelist: drop non-fillable keys (default). When False,
                every key must still be a known column.

        Returns:
            The new primary key value.

        Raises:
            InvalidInputError: nothing writable left after filtering.
            InvalidFieldError: unknown column with the whitelist disabled.
            DatabaseError: classified driver failure (e.g. ConstraintViolationError).
        """
        logger.debug(
            "repo.create.start",
            extra={"table": self.table_name, "operation": "create", "provided_fields": sorted(data)},
        )

        record = self._prepare_write(data, enforce_whitelist, "create")
        if not record:
            raise InvalidInputError(
                f"Create data for {self.table_name} cannot be empty",
                context={"table": self.table_name, "operation": "create"},
            )
        self._stamp_create(record, self._clock())

        start = time.perf_counter()
        with self._annotate("create", fields=sorted(record)):
            result = self._execute(
                insert(self.schema.table).values(record),
                StatementKind.INSERT,
                want_primary_key=True,
            )

        new_id = result.primary_key[0] if result.primary_key else result.lastrowid
        logger.info(
            "repo.create.success",
            extra={
                "table": self.table_name,
                "operation": "create",
                "id": new_id,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return new_id

    def batch_create(self, records: Sequence[Mapping[str, Any]], batch_size: int = 100,
                     enforce_whitelist: bool = True) -> list[Any]:
        """
        Insert many rows, one multi-row INSERT per chunk of `batch_size`.

        Every record is filtered and stamped first; within a chunk all records
        must end up with the same column set. All validation happens before
        the first INSERT, and all chunks run inside one transaction.

        Args:
            records: list of column -> value mappings.
            batch_size: rows per INSERT; 0 puts everything in one chunk.

        Returns:
            New primary keys in input order.

        Raises:
            InvalidInputError: negative batch size, an empty record, or a
                record whose columns differ from the first record of its
                chunk (the message names the offending index).
        """
        if not records:
            return []
        if batch_size < 0:
            raise InvalidInputError("batch_size cannot be negative", context={"batch_size": batch_size})

        size = batch_size or len(records)
        now = self._clock()

        prepared: list[Record] = []
        for index, data in enumerate(records):
            record = self._prepare_write(data, enforce_whitelist, "batch_create")
            if not record:
                raise InvalidInputError(
                    f"Record at index {index} has no writable fields",
                    context={"table": self.table_name, "index": index},
                )
            self._stamp_create(record, now)
            prepared.append(record)

        chunks = [prepared[offset:offset + size] for offset in range(0, len(prepared), size)]
        for chunk_no, chunk in enumerate(chunks):
            expected = set(chunk[0])
            for position, record in enumerate(chunk):
                if set(record) != expected:
                    index = chunk_no * size + position
                    raise InvalidInputError(
                        f"Inconsistent record structure in batch insert at index {index}",
                        fields=sorted(expected.symmetric_difference(record)),
                        context={"table": self.table_name, "index": index},
                    )

        logger.debug(
            "repo.batch_create.start",
            extra={"table": self.table_name, "record_count": len(prepared), "chunk_count": len(chunks)},
        )

        start = time.perf_counter()
        ids: list[Any] = []
        with self._annotate("batch_create", record_count=len(prepared)):
            with self.db.transaction():
                for chunk in chunks:
                    ids.extend(self._insert_chunk(chunk))

        logger.info(
            "repo.batch_create.success",
            extra={
                "table": self.table_name,
                "record_count": len(ids),
                "chunk_count": len(chunks),
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return ids

    def _insert_chunk(self, chunk: list[Record]) -> list[Any]:
        table = self.schema.table
        pk = self.schema.pk_column
        statement = insert(table).values(chunk)

        if pk.key in chunk[0]:
            self._execute(statement, StatementKind.INSERT)
            return [record[pk.key] for record in chunk]

        if self.db.executor.supports_multirow_returning():
            result = self._execute(statement.returning(pk), StatementKind.INSERT)
            ids = result.column(pk.key)
            # RETURNING row order is unspecified; generated integer keys
            # ascend in VALUES order within one statement.
            if pk.autoincrement and _is_integer(pk):
                ids.sort()
            return ids

        # Fallback: ids rebuilt from the driver's last insert id. Only valid
        # for auto-increment keys with no concurrent writers on the table.
        result = self._execute(statement, StatementKind.INSERT)
        last_id = result.lastrowid
        if not last_id:
            raise UnknownDatabaseError(
                "Driver did not report generated ids for batch insert",
                context={"table": self.table_name, "record_count": len(chunk)},
            )
        count = len(chunk)
        if self.db.manager.profile.multi_insert_reports_first_id:
            first = last_id
        else:
            first = last_id - count + 1
        return list(range(first, first + count))

    # ==========================================================================
    # Update
    # ==========================================================================

    def update(self, entity_id: Any, data: Mapping[str, Any], enforce_whitelist: bool = True,
               conditions: Conditions | None = None) -> bool:
        """
        Update one row by primary key (and any extra equality conditions).

        Returns:
            True if at least one row changed, False when nothing matched
            (logged as a warning, not raised).

        Raises:
            InvalidInputError: nothing writable left after filtering.
        """
        record = self._prepare_write(data, enforce_whitelist, "update")
        if not record:
            raise InvalidInputError(
                f"Update data for {self.table_name} cannot be empty",
                context={"table": self.table_name, "operation": "update", "id": entity_id},
            )
        self._stamp_update(record, self._clock())
        return self._update_row(entity_id, record, conditions, "update")

    def _update_row(self, entity_id: Any, record: Record, conditions: Conditions | None, operation: str) -> bool:
        where = [self.schema.pk_column == entity_id, *self._where(conditions)]
        stmt = update(self.schema.table).where(*where).values(record)

        with self._annotate(operation, id=entity_id, conditions=dict(conditions or {})):
            result = self._execute(stmt, StatementKind.UPDATE)

        if result.rowcount == 0:
            logger.warning(
                f"repo.{operation}.no_rows",
                extra={"table": self.table_name, "operation": operation, "id": entity_id,
                       "condition_fields": sorted(conditions or {})},
            )
            return False

        logger.debug(
            f"repo.{operation}.success",
            extra={"table": self.table_name, "operation": operation, "id": entity_id},
        )
        return True

    def batch_update(self, data: Mapping[str, Any], conditions: Conditions, limit: int = 0,
                     enforce_whitelist: bool = True) -> int:
        """
        Update every row matching `conditions`.

        Both `conditions` and `data` must be non-empty; the check happens
        before any statement is sent, so a mistaken call can never rewrite
        the whole table.

        Returns:
            Number of affected rows.
        """
        self._require_conditions(conditions, "batch_update")
        record = self._prepare_write(data, enforce_whitelist, "batch_update")
        if not record:
            raise InvalidInputError(
                f"Batch update data for {self.table_name} cannot be empty",
                context={"table": self.table_name, "operation": "batch_update"},
            )
        self._stamp_update(record, self._clock())
        return self._update_where(record, conditions, limit, "batch_update")

    def _update_where(self, record: Record, conditions: Conditions, limit: int, operation: str) -> int:
        where = self._where(conditions)
        stmt = self._apply_limit(update(self.schema.table).where(*where).values(record), where, limit)

        with self._annotate(operation, conditions=dict(conditions)):
            result = self._execute(stmt, StatementKind.UPDATE)

        affected = max(result.rowcount, 0)
        logger.info(
            f"repo.{operation}.success",
            extra={"table": self.table_name, "operation": operation, "affected": affected,
                   "condition_fields": sorted(conditions), "limit": limit},
        )
        return affected

    # ==========================================================================
    # Delete
    # ==========================================================================

    def delete(self, entity_id: Any, soft: bool = False, conditions: Conditions | None = None) -> bool:
        """
        Delete one row by primary key.

        With `soft=True` on a soft-delete table, the row is kept and stamped
        with `deleted_at` (and `updated_at`) instead. Asking for a soft delete
        on a table without the capability performs a physical delete.

        Returns:
            True if a row was deleted (or marked), False if nothing matched.
        """
        if soft and self.schema.soft_delete:
            return self._update_row(entity_id, self._soft_delete_values(), conditions, "soft_delete")
        if soft:
            logger.warning(
                "repo.delete.soft_unsupported",
                extra={"table": self.table_name, "operation": "delete", "id": entity_id},
            )

        where = [self.schema.pk_column == entity_id, *self._where(conditions)]
        with self._annotate("delete", id=entity_id, conditions=dict(conditions or {})):
            result = self._execute(delete(self.schema.table).where(*where), StatementKind.DELETE)

        if result.rowcount > 0:
            logger.debug("repo.delete.success", extra={"table": self.table_name, "id": entity_id})
            return True
        logger.warning("repo.delete.no_rows", extra={"table": self.table_name, "id": entity_id})
        return False

    def batch_delete(self, conditions: Conditions, soft: bool = False, limit: int = 0) -> int:
        """
        Delete every row matching `conditions` (required, never empty).

        The soft path goes through the batch update machinery with the
        whitelist bypassed.

        Returns:
            Number of affected rows.
        """
        self._require_conditions(conditions, "batch_delete")

        if soft and self.schema.soft_delete:
            return self._update_where(self._soft_delete_values(), conditions, limit, "batch_soft_delete")

        where = self._where(conditions)
        stmt = self._apply_limit(delete(self.schema.table).where(*where), where, limit)
        with self._annotate("batch_delete", conditions=dict(conditions)):
            result = self._execute(stmt, StatementKind.DELETE)

        affected = max(result.rowcount, 0)
        logger.info(
            "repo.batch_delete.success",
            extra={"table": self.table_name, "affected": affected, "condition_fields": sorted(conditions)},
        )
        return affected

    def _soft_delete_values(self) -> Record:
        now = self._clock()
        values: Record = {DELETED_AT: now}
        if self.schema.has_updated_at:
            values[UPDATED_AT] = now
        return values

    # ==========================================================================
    # Read
    # ==========================================================================

    def find_by(
        self,
        conditions: Conditions | None = None,
        columns: Sequence[str] | None = None,
        limit: int = 0,
        offset: int = 0,
        order_by: Mapping[str, str] | None = None,
        include_deleted: bool = False,
    ) -> list[Record]:
        """
        Return rows matching every equality condition.

        Args:
            conditions: column -> value; None matches IS NULL.
            columns: columns to return (default: all).
            limit: maximum rows, 0 for no limit.
            offset: rows to skip.
            order_by: column -> 'ASC' | 'DESC' (anything else is treated as ASC).
            include_deleted: also return soft-deleted rows.

        Raises:
            InvalidFieldError: unknown column in conditions, columns or order_by.
        """
        stmt = select(*self._select_columns(columns)).where(*self._where(conditions))
        stmt = self._apply_soft_delete(stmt, include_deleted)

        for name, direction in (order_by or {}).items():
            column = self.schema.column(name)
            stmt = stmt.order_by(column.desc() if sanitize_direction(direction) == "DESC" else column.asc())

        if limit > 0:
            stmt = stmt.limit(limit)
        if offset > 0:
            stmt = stmt.offset(offset)

        with self._annotate("find_by", conditions=dict(conditions or {})):
            result = self._execute(stmt, StatementKind.SELECT)

        logger.debug(
            "repo.find_by.success",
            extra={"table": self.table_name, "row_count": len(result.rows),
                   "condition_fields": sorted(conditions or {})},
        )
        return result.rows

    def find_one_by(self, conditions: Conditions, columns: Sequence[str] | None = None,
                    include_deleted: bool = False) -> Record | None:
        rows = self.find_by(conditions, columns, limit=1, include_deleted=include_deleted)
        return rows[0] if rows else None

    def find_by_id(self, entity_id: Any, columns: Sequence[str] | None = None,
                   include_deleted: bool = False) -> Record | None:
        return self.find_one_by({self.schema.primary_key: entity_id}, columns, include_deleted)

    def find_by_id_or_raise(self, entity_id: Any, columns: Sequence[str] | None = None,
                            include_deleted: bool = False) -> Record:
        """
        Get a row by its primary key or raise DataNotFoundError.
        """
        row = self.find_by_id(entity_id, columns, include_deleted)
        if row is None:
            raise DataNotFoundError(
                f"{self.table_name} with ID {entity_id} not found",
                context={"table": self.table_name, "id": entity_id},
            )
        return row

    def find_all(self, columns: Sequence[str] | None = None, order_by: Mapping[str, str] | None = None,
                 limit: int = 0, offset: int = 0) -> list[Record]:
        return self.find_by(None, columns, limit=limit, offset=offset, order_by=order_by)

    def exists(self, conditions: Conditions, include_deleted: bool = False) -> bool:
        return self.find_one_by(conditions, [self.schema.primary_key], include_deleted) is not None

    def count(self, conditions: Conditions | None = None, include_deleted: bool = False) -> int:
        stmt = select(func.count()).select_from(self.schema.table).where(*self._where(conditions))
        stmt = self._apply_soft_delete(stmt, include_deleted)

        with self._annotate("count", conditions=dict(conditions or {})):
            result = self._execute(stmt, StatementKind.COUNT)
        return int(result.scalar() or 0)

    # ==========================================================================
    # Transactions
    # ==========================================================================

    def transaction(self, fn: Callable[["BaseRepository"], T]) -> T:
        """
        Run `fn(self)` inside a transaction scope and return its result.

        Nested calls share one physical transaction. Any exception rolls the
        whole transaction back and is re-raised unchanged.
        """
        try:
            with self.db.transaction():
                return fn(self)
        except Exception as exc:
            logger.error(
                "repo.transaction.failed",
                extra={"table": self.table_name, "error_class": exc.__class__.__name__,
                       "level": self.db.transactions.level},
            )
            raise

    def begin_transaction(self) -> None:
        self.db.begin()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def in_transaction(self) -> bool:
        return self.db.in_transaction()

    # ==========================================================================
    # Observability
    # ==========================================================================

    def get_query_stats(self) -> dict[str, Any]:
        return self.db.get_query_stats()

    def reset_query_stats(self) -> None:
        self.db.reset_query_stats()


__all__ = ["BaseRepository", "Record", "sanitize_direction", "utcnow"]
