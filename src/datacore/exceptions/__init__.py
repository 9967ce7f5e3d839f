# src/datacore/exceptions/
# ├─ __init__.py            # public API re-exports
# ├─ base.py                # ErrorKind taxonomy, RepositoryError / DatabaseError hierarchy
# ├─ classifier.py          # driver code / message -> ErrorKind + status code
# └─ mapper.py              # build_database_error(), db_error_handler()

from .base import (
    ErrorKind,
    RepositoryError,
    InvalidInputError,
    InvalidFieldError,
    DatabaseError,
    ConnectionFailedError,
    StatementSyntaxError,
    ConstraintViolationError,
    DuplicateError,
    DataNotFoundError,
    TransactionError,
    PermissionDeniedError,
    ConfigurationError,
    UnknownDatabaseError,
    error_for_kind,
)
from .classifier import Classification, classify_error, classify_message
from .mapper import build_database_error, db_error_handler

__all__ = [
    "ErrorKind",
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
    "Classification",
    "classify_error",
    "classify_message",
    "build_database_error",
    "db_error_handler",
]
