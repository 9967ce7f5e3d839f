"""
Classify raw driver failures into the closed ErrorKind taxonomy.

Classification is layered, first match wins:

1. SQLSTATE codes (psycopg exposes `pgcode` / `sqlstate`, pyodbc puts the
   SQLSTATE in `args[0]`).
2. MySQL numeric error codes (`args[0]` on pymysql / mysqlclient errors).
3. A lowercase keyword ladder over the driver message, which is the only
   signal SQLite and most "could not connect" failures give us.

The classifier never raises and never logs message text above DEBUG;
callers decide what to do with the result.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import DBAPIError

from .base import ErrorKind, DEFAULT_STATUS_CODES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    kind: ErrorKind
    status_code: int
    sql_state: str | None = None
    driver_code: int | None = None
    constraint: str | None = None
    unique: bool = False


class SqlState(str, Enum):
    UNIQUE_VIOLATION = "23505"
    NOT_NULL_VIOLATION = "23502"
    FOREIGN_KEY_VIOLATION = "23503"
    CHECK_VIOLATION = "23514"
    SYNTAX_ERROR = "42601"
    UNDEFINED_COLUMN = "42703"
    INSUFFICIENT_PRIVILEGE = "42501"
    UNDEFINED_TABLE = "42P01"
    INVALID_CATALOG_NAME = "3D000"
    SERIALIZATION_FAILURE = "40001"
    DEADLOCK_DETECTED = "40P01"


# Exact SQLSTATE matches, checked before the class-prefix rules below.
SQLSTATE_MAP: dict[str, tuple[ErrorKind, int]] = {
    SqlState.UNIQUE_VIOLATION: (ErrorKind.CONSTRAINT_VIOLATION, 409),
    SqlState.NOT_NULL_VIOLATION: (ErrorKind.CONSTRAINT_VIOLATION, 400),
    SqlState.FOREIGN_KEY_VIOLATION: (ErrorKind.CONSTRAINT_VIOLATION, 400),
    SqlState.CHECK_VIOLATION: (ErrorKind.CONSTRAINT_VIOLATION, 400),
    SqlState.SYNTAX_ERROR: (ErrorKind.SYNTAX_ERROR, 500),
    SqlState.UNDEFINED_COLUMN: (ErrorKind.SYNTAX_ERROR, 500),
    SqlState.INSUFFICIENT_PRIVILEGE: (ErrorKind.PERMISSION_DENIED, 403),
    SqlState.UNDEFINED_TABLE: (ErrorKind.CONFIGURATION_ERROR, 500),
    SqlState.INVALID_CATALOG_NAME: (ErrorKind.CONFIGURATION_ERROR, 500),
    SqlState.SERIALIZATION_FAILURE: (ErrorKind.TRANSACTION_FAILED, 500),
    SqlState.DEADLOCK_DETECTED: (ErrorKind.TRANSACTION_FAILED, 500),
}

# SQLSTATE class (first two characters) fallbacks.
SQLSTATE_CLASS_MAP: dict[str, tuple[ErrorKind, int]] = {
    "08": (ErrorKind.CONNECTION_FAILED, 503),
    "23": (ErrorKind.CONSTRAINT_VIOLATION, 400),
    "28": (ErrorKind.PERMISSION_DENIED, 403),
    "40": (ErrorKind.TRANSACTION_FAILED, 500),
    "42": (ErrorKind.SYNTAX_ERROR, 500),
}

MYSQL_CODE_MAP: dict[int, tuple[ErrorKind, int]] = {
    1062: (ErrorKind.CONSTRAINT_VIOLATION, 409),  # ER_DUP_ENTRY
    1451: (ErrorKind.CONSTRAINT_VIOLATION, 400),  # ER_ROW_IS_REFERENCED_2
    1452: (ErrorKind.CONSTRAINT_VIOLATION, 400),  # ER_NO_REFERENCED_ROW_2
    1048: (ErrorKind.CONSTRAINT_VIOLATION, 400),  # ER_BAD_NULL_ERROR
    3819: (ErrorKind.CONSTRAINT_VIOLATION, 400),  # ER_CHECK_CONSTRAINT_VIOLATED
    1064: (ErrorKind.SYNTAX_ERROR, 500),
    1054: (ErrorKind.SYNTAX_ERROR, 500),          # unknown column
    1044: (ErrorKind.PERMISSION_DENIED, 403),
    1045: (ErrorKind.PERMISSION_DENIED, 403),
    1142: (ErrorKind.PERMISSION_DENIED, 403),
    1049: (ErrorKind.CONFIGURATION_ERROR, 500),   # unknown database
    1146: (ErrorKind.CONFIGURATION_ERROR, 500),   # table doesn't exist
    2005: (ErrorKind.CONFIGURATION_ERROR, 500),   # unknown server host
    1205: (ErrorKind.TRANSACTION_FAILED, 500),    # lock wait timeout
    1213: (ErrorKind.TRANSACTION_FAILED, 500),    # deadlock
    2002: (ErrorKind.CONNECTION_FAILED, 503),
    2003: (ErrorKind.CONNECTION_FAILED, 503),
    2006: (ErrorKind.CONNECTION_FAILED, 503),
    2013: (ErrorKind.CONNECTION_FAILED, 503),
}


# (keywords, kind, status) evaluated top to bottom. Connection keywords come
# after the permission and configuration ones: drivers wrap fatal connect
# causes in "connection failed: ..." text.
MESSAGE_RULES: list[tuple[tuple[str, ...], ErrorKind, int]] = [
    (("duplicate entry", "duplicate key", "unique constraint", "unique failed", "unique violation"),
     ErrorKind.CONSTRAINT_VIOLATION, 409),
    (("foreign key",),
     ErrorKind.CONSTRAINT_VIOLATION, 400),
    (("not null constraint", "null value in column", "cannot be null", "check constraint"),
     ErrorKind.CONSTRAINT_VIOLATION, 400),
    (("syntax error", "sql syntax", "no such column", "unknown column"),
     ErrorKind.SYNTAX_ERROR, 500),
    (("access denied", "permission denied", "authentication failed", "login failed",
      "not authorized", "attempt to write a readonly database"),
     ErrorKind.PERMISSION_DENIED, 403),
    (("unknown database", "unknown table", "no such table", "does not exist",
      "could not translate host name", "unknown mysql server host", "name or service not known",
      "nodename nor servname", "unable to open database file", "no module named",
      "can't load plugin", "no such module", "tns:could not resolve"),
     ErrorKind.CONFIGURATION_ERROR, 500),
    (("connection refused", "connection failed", "could not connect", "can't connect",
      "server has gone away", "lost connection", "connection reset", "server closed the connection",
      "connection timed out", "timeout expired"),
     ErrorKind.CONNECTION_FAILED, 503),
    (("deadlock", "lock wait timeout", "database is locked", "could not serialize"),
     ErrorKind.TRANSACTION_FAILED, 500),
]

UNIQUE_KEYWORDS = ("duplicate entry", "duplicate key", "unique constraint", "unique failed", "unique violation")

# Kinds a connect attempt can never recover from by retrying.
FATAL_CONNECT_KINDS = frozenset({ErrorKind.PERMISSION_DENIED, ErrorKind.CONFIGURATION_ERROR})


def _match_any(msg: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in msg for keyword in keywords)


def _driver_error(exc: BaseException) -> BaseException:
    """Unwrap a SQLAlchemy DBAPIError to the underlying DB-API exception."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return exc.orig
    return exc


def extract_sql_state(orig: BaseException) -> str | None:
    """Best-effort SQLSTATE lookup across psycopg, psycopg2 and pyodbc."""
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if isinstance(value, str) and value:
            return value

    args = getattr(orig, "args", ())
    if args and isinstance(args[0], str) and len(args[0]) == 5 and args[0][:2].isalnum():
        # pyodbc: ('23000', '[23000] [Microsoft]...')
        if len(args) > 1:
            return args[0]
    return None


def extract_driver_code(orig: BaseException) -> int | None:
    """Numeric vendor error code (MySQL drivers put it in args[0])."""
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and not isinstance(args[0], bool):
        return args[0]
    code = getattr(orig, "code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    return None


def extract_constraint_name(orig: BaseException) -> str | None:
    diag = getattr(orig, "diag", None)
    if diag is None:
        return None
    return getattr(diag, "constraint_name", None)


def driver_message(exc: BaseException) -> str:
    """The driver's own message text, without SQLAlchemy's statement suffix."""
    orig = _driver_error(exc)
    text = str(orig)
    return text if text else exc.__class__.__name__


def _classify_from_sql_state(sql_state: str | None) -> tuple[ErrorKind, int] | None:
    if not sql_state:
        return None
    exact = SQLSTATE_MAP.get(sql_state)
    if exact:
        return exact
    return SQLSTATE_CLASS_MAP.get(sql_state[:2])


def _classify_from_driver_code(code: int | None) -> tuple[ErrorKind, int] | None:
    if code is None:
        return None
    return MYSQL_CODE_MAP.get(code)


def _classify_from_generic_message(msg: str) -> tuple[ErrorKind, int]:
    normalized = (msg or "").lower()
    for keywords, kind, status in MESSAGE_RULES:
        if _match_any(normalized, keywords):
            return kind, status

    logger.debug("classifier.unmatched_message", extra={"message_snippet": normalized[:200]})
    return ErrorKind.UNKNOWN_ERROR, DEFAULT_STATUS_CODES[ErrorKind.UNKNOWN_ERROR]


def _refine_connection_failure(matched: tuple[ErrorKind, int], msg: str) -> tuple[ErrorKind, int]:
    """
    A connection-class code whose message names a fatal cause takes that cause.

    MySQL reports an unresolvable host as 2003 ("... Name or service not
    known"); reconnecting cannot fix that.
    """
    if matched[0] is not ErrorKind.CONNECTION_FAILED:
        return matched
    normalized = (msg or "").lower()
    for keywords, kind, status in MESSAGE_RULES:
        if kind in FATAL_CONNECT_KINDS and _match_any(normalized, keywords):
            return kind, status
    return matched


def classify_message(message: str) -> Classification:
    """Classify a bare message string (no codes available)."""
    kind, status = _classify_from_generic_message(message)
    unique = kind is ErrorKind.CONSTRAINT_VIOLATION and _match_any(message.lower(), UNIQUE_KEYWORDS)
    return Classification(kind=kind, status_code=status, unique=unique)


def classify_error(exc: BaseException) -> Classification:
    """
    Heuristically classify a driver/SQLAlchemy exception.

    Returns:
        Classification with kind, status code and whatever diagnostics the
        driver exposed (sql_state, vendor code, constraint name).
    """
    orig = _driver_error(exc)
    sql_state = extract_sql_state(orig)
    driver_code = extract_driver_code(orig)
    constraint = extract_constraint_name(orig)
    message = driver_message(exc)

    matched = _classify_from_sql_state(sql_state) or _classify_from_driver_code(driver_code)
    if matched is None:
        matched = _classify_from_generic_message(message)
    else:
        matched = _refine_connection_failure(matched, message)
        logger.debug(
            "classifier.code_match",
            extra={"sql_state": sql_state, "driver_code": driver_code, "constraint": constraint},
        )

    kind, status = matched
    unique = (
        sql_state == SqlState.UNIQUE_VIOLATION
        or driver_code == 1062
        or (kind is ErrorKind.CONSTRAINT_VIOLATION and _match_any(message.lower(), UNIQUE_KEYWORDS))
    )
    return Classification(
        kind=kind,
        status_code=status,
        sql_state=sql_state,
        driver_code=driver_code,
        constraint=constraint,
        unique=unique,
    )


__all__ = [
    "Classification",
    "SqlState",
    "classify_error",
    "classify_message",
    "driver_message",
    "extract_sql_state",
    "extract_driver_code",
    "extract_constraint_name",
]
