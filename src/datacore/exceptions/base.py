"""
Exception hierarchy for the data-access layer.

Two families live here:

- RepositoryError and its direct subclasses (InvalidInputError,
  InvalidFieldError) are raised by repository code *before* anything is sent
  to the database, for caller mistakes such as empty payloads or unknown
  column names.
- DatabaseError and its subclasses wrap a failure that came back from the
  driver (or from the connection layer). Each one carries an ErrorKind from a
  closed taxonomy, a numeric status code and a context map.
"""

from enum import Enum
from typing import Any, Iterable


class ErrorKind(str, Enum):
    CONNECTION_FAILED = "connection_failed"
    SYNTAX_ERROR = "syntax_error"
    CONSTRAINT_VIOLATION = "constraint_violation"
    DATA_NOT_FOUND = "data_not_found"
    TRANSACTION_FAILED = "transaction_failed"
    PERMISSION_DENIED = "permission_denied"
    CONFIGURATION_ERROR = "configuration_error"
    UNKNOWN_ERROR = "unknown_error"


DEFAULT_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.CONNECTION_FAILED: 503,
    ErrorKind.SYNTAX_ERROR: 500,
    ErrorKind.CONSTRAINT_VIOLATION: 409,
    ErrorKind.DATA_NOT_FOUND: 404,
    ErrorKind.TRANSACTION_FAILED: 500,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.CONFIGURATION_ERROR: 500,
    ErrorKind.UNKNOWN_ERROR: 500,
}

USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.CONNECTION_FAILED: "The database is temporarily unavailable. Please try again later.",
    ErrorKind.SYNTAX_ERROR: "The request could not be processed due to an internal error.",
    ErrorKind.CONSTRAINT_VIOLATION: "The data conflicts with existing records or violates a data rule.",
    ErrorKind.DATA_NOT_FOUND: "The requested record was not found.",
    ErrorKind.TRANSACTION_FAILED: "The operation could not be completed and was rolled back.",
    ErrorKind.PERMISSION_DENIED: "The operation is not permitted.",
    ErrorKind.CONFIGURATION_ERROR: "The database is not configured correctly.",
    ErrorKind.UNKNOWN_ERROR: "An unexpected database error occurred.",
}


class RepositoryError(Exception):
    """
    Base exception for repository/service errors.

    - message: human-friendly message (safe to show to clients)
    - fields: optional list of field names related to the error (e.g., ['title'])
    - constraint: optional DB constraint name or identifier (for logs only)
    - error_code: canonical short code (e.g., 'duplicate', 'invalid_field') used by clients
    - context: free-form diagnostic map (table, conditions, ...), already sanitized
    """

    ERROR_CODE_TO_STATUS = {
        "duplicate": 409,
        "invalid_field": 422,
        "invalid_input": 422,
        **{kind.value: status for kind, status in DEFAULT_STATUS_CODES.items()},
    }

    def __init__(self, message: str, *, fields: Iterable[str] | None = None,
                 constraint: str | None = None, error_code: str | None = None,
                 context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields) if fields else None
        self.constraint = constraint
        self.error_code = error_code
        self.context: dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        base = self.message
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.constraint:
            parts.append(f"constraint: {self.constraint}")
        if self.error_code:
            parts.append(f"code: {self.error_code}")
        if parts:
            return f"{base} ({'; '.join(parts)})"
        return base

    def with_context(self, **extra: Any) -> "RepositoryError":
        """Merge `extra` into the context map and return self (for chaining)."""
        self.context.update(extra)
        return self

    def to_payload(self) -> dict:
        """
        Return a JSON-serializable dict suitable for API responses.

        Keep the payload concise and free of raw DB messages/values; the
        context map is deliberately not part of it.
        """
        payload = {"detail": self.message}
        if self.error_code:
            payload["code"] = self.error_code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload

    def http_status(self) -> int:
        if self.error_code:
            return self.ERROR_CODE_TO_STATUS.get(self.error_code, 400)
        return 400


class InvalidInputError(RepositoryError):
    """Raised for caller input that can never succeed (empty payload, missing conditions)."""

    def __init__(self, message: str, *, fields: Iterable[str] | None = None,
                 context: dict[str, Any] | None = None):
        super().__init__(message, fields=fields, error_code="invalid_input", context=context)


class InvalidFieldError(RepositoryError):
    """Raised when the caller names a column the repository does not know about."""

    def __init__(self, message: str, *, fields: Iterable[str] | None = None,
                 context: dict[str, Any] | None = None):
        super().__init__(message, fields=fields, error_code="invalid_field", context=context)


class DatabaseError(RepositoryError):
    """
    A classified failure reported by the database driver or connection layer.

    Attributes:
        kind: one of ErrorKind.
        status_code: numeric status-like code (503 for connectivity, 409 for
            unique violations, ...).
        context: table, conditions/id, sanitized original driver message,
            sql_state and driver_code where available.
    """

    default_kind = ErrorKind.UNKNOWN_ERROR

    def __init__(self, message: str, *, kind: ErrorKind | None = None,
                 status_code: int | None = None, fields: Iterable[str] | None = None,
                 constraint: str | None = None, context: dict[str, Any] | None = None):
        kind = ErrorKind(kind) if kind is not None else self.default_kind
        super().__init__(message, fields=fields, constraint=constraint,
                         error_code=kind.value, context=context)
        self.kind = kind
        self.status_code = status_code if status_code is not None else DEFAULT_STATUS_CODES[kind]

    def http_status(self) -> int:
        return self.status_code

    @property
    def sql_state(self) -> str | None:
        return self.context.get("sql_state")

    def is_connection_error(self) -> bool:
        return self.kind is ErrorKind.CONNECTION_FAILED

    def is_constraint_violation(self) -> bool:
        return self.kind is ErrorKind.CONSTRAINT_VIOLATION

    def is_permission_error(self) -> bool:
        return self.kind is ErrorKind.PERMISSION_DENIED

    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]

    def to_dict(self, include_context: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "message": self.message,
            "kind": self.kind.value,
            "status_code": self.status_code,
        }
        if self.fields:
            data["fields"] = list(self.fields)
        if self.constraint:
            data["constraint"] = self.constraint
        if include_context:
            data["context"] = dict(self.context)
        return data


class ConnectionFailedError(DatabaseError):
    default_kind = ErrorKind.CONNECTION_FAILED


class StatementSyntaxError(DatabaseError):
    default_kind = ErrorKind.SYNTAX_ERROR


class ConstraintViolationError(DatabaseError):
    default_kind = ErrorKind.CONSTRAINT_VIOLATION


class DuplicateError(ConstraintViolationError):
    """Unique constraint / duplicate value."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("status_code", 409)
        super().__init__(message, **kwargs)
        self.error_code = "duplicate"


class DataNotFoundError(DatabaseError):
    default_kind = ErrorKind.DATA_NOT_FOUND


class TransactionError(DatabaseError):
    default_kind = ErrorKind.TRANSACTION_FAILED


class PermissionDeniedError(DatabaseError):
    default_kind = ErrorKind.PERMISSION_DENIED


class ConfigurationError(DatabaseError):
    default_kind = ErrorKind.CONFIGURATION_ERROR


class UnknownDatabaseError(DatabaseError):
    default_kind = ErrorKind.UNKNOWN_ERROR


_KIND_TO_CLASS: dict[ErrorKind, type[DatabaseError]] = {
    ErrorKind.CONNECTION_FAILED: ConnectionFailedError,
    ErrorKind.SYNTAX_ERROR: StatementSyntaxError,
    ErrorKind.CONSTRAINT_VIOLATION: ConstraintViolationError,
    ErrorKind.DATA_NOT_FOUND: DataNotFoundError,
    ErrorKind.TRANSACTION_FAILED: TransactionError,
    ErrorKind.PERMISSION_DENIED: PermissionDeniedError,
    ErrorKind.CONFIGURATION_ERROR: ConfigurationError,
    ErrorKind.UNKNOWN_ERROR: UnknownDatabaseError,
}


def error_for_kind(kind: ErrorKind) -> type[DatabaseError]:
    """Return the DatabaseError subclass used for `kind`."""
    return _KIND_TO_CLASS[ErrorKind(kind)]


__all__ = [
    "ErrorKind",
    "DEFAULT_STATUS_CODES",
    "RepositoryError",
    "InvalidInputError",
    "InvalidFieldError",
    "DatabaseError",
    "ConnectionFailedError",
    "StatementSyntaxError",
    "ConstraintViolationError",
    "DuplicateError",
    "DataNotFoundError",
    "TransactionError",
    "PermissionDeniedError",
    "ConfigurationError",
    "UnknownDatabaseError",
    "error_for_kind",
]
