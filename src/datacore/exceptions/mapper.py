import re
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .base import DatabaseError, DuplicateError, ErrorKind, RepositoryError, error_for_kind
from .classifier import Classification, classify_error, driver_message
from ..utils.masking import sanitize_message

logger = logging.getLogger(__name__)


def _extract_columns_postgres(msg: str) -> list[str] | None:
    """
    Try to extract involved column names from common Postgres messages:
      - 'null value in column "title" violates not-null constraint'
      - 'DETAIL:  Key (title, owner)=(a, b) already exists.'
    """
    if not msg:
        return None

    m = re.search(r'null value in column "(?P<col>[^"]+)"', msg, flags=re.IGNORECASE)
    if m:
        return [m.group("col")]

    m = re.search(r'key \((?P<cols>[^)]+)\)=', msg, flags=re.IGNORECASE)
    if m:
        return [c.strip().strip('"') for c in m.group("cols").split(",")]

    return None


def _extract_columns_sqlite(msg: str) -> list[str] | None:
    m = re.search(r'(?:UNIQUE|NOT NULL) constraint failed: (?P<cols>[^\n\[]+)', msg, flags=re.IGNORECASE)
    if m:
        return [c.split('.')[-1].strip() for c in re.split(r',\s*', m.group("cols").strip())]
    return None


def _extract_columns_mysql(msg: str) -> list[str] | None:
    m = re.search(r"Column '(?P<col>[^']+)' cannot be null", msg, flags=re.IGNORECASE)
    if m:
        return [m.group("col")]
    m = re.search(r"Duplicate entry .* for key '(?P<key>[^']+)'", msg, flags=re.IGNORECASE)
    if m:
        return [m.group("key").split(".")[-1]]
    return None


def extract_columns(msg: str) -> list[str] | None:
    """Best-effort extraction of column names from a constraint message (Postgres, SQLite, MySQL)."""
    for extractor in (_extract_columns_postgres, _extract_columns_sqlite, _extract_columns_mysql):
        cols = extractor(msg)
        if cols:
            return cols
    return None


def build_database_error(
    exc: BaseException,
    message: str | None = None,
    context: dict[str, Any] | None = None,
    classification: Classification | None = None,
) -> DatabaseError:
    """
    Translate a driver/SQLAlchemy exception into the matching DatabaseError subclass.

    The returned error's context always carries the sanitized driver message
    under `original_message` plus `sql_state` / `driver_code` when the driver
    exposed them. Raw credentials never make it into the context.
    """
    if isinstance(exc, DatabaseError):
        if context:
            exc.with_context(**context)
        return exc

    found = classification or classify_error(exc)
    raw = sanitize_message(driver_message(exc))

    ctx: dict[str, Any] = dict(context or {})
    ctx["original_message"] = raw
    ctx["error_class"] = exc.__class__.__name__
    if found.sql_state:
        ctx["sql_state"] = found.sql_state
    if found.driver_code is not None:
        ctx["driver_code"] = found.driver_code

    fields = extract_columns(raw) if found.kind is ErrorKind.CONSTRAINT_VIOLATION else None
    text = message or raw

    if found.kind is ErrorKind.CONSTRAINT_VIOLATION and found.unique:
        return DuplicateError(text, status_code=found.status_code, fields=fields,
                              constraint=found.constraint, context=ctx)

    error_cls = error_for_kind(found.kind)
    return error_cls(text, kind=found.kind, status_code=found.status_code, fields=fields,
                     constraint=found.constraint, context=ctx)


@contextmanager
def db_error_handler(connection: Connection | None, table: str | None = None,
                     context: dict[str, Any] | None = None) -> Iterator[None]:
    """
    Usage:
        with db_error_handler(conn, "risks"):
            ... statements that may raise SQLAlchemyError ...

    Rolls back the connection's open transaction on error (when one is given)
    and re-raises a mapped DatabaseError. Repository-level errors pass through
    untouched.
    """
    try:
        yield
    except RepositoryError:
        raise
    except SQLAlchemyError as exc:
        if connection is not None:
            try:
                if connection.in_transaction():
                    connection.rollback()
            except SQLAlchemyError:
                logger.exception("mapper.rollback_failed", extra={"table": table})

        ctx = dict(context or {})
        if table:
            ctx.setdefault("table", table)
        error = build_database_error(exc, context=ctx)
        logger.info(
            "mapper.error_mapped",
            extra={"table": table, "kind": error.kind.value, "status_code": error.status_code},
        )
        raise error from exc


__all__ = ["build_database_error", "db_error_handler", "extract_columns"]
