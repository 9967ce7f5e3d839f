"""
Tests for the error hierarchy and the exception mapper.
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from datacore.exceptions import (
    ConfigurationError,
    ConnectionFailedError,
    ConstraintViolationError,
    DatabaseError,
    DataNotFoundError,
    DuplicateError,
    ErrorKind,
    InvalidFieldError,
    InvalidInputError,
    UnknownDatabaseError,
    build_database_error,
    db_error_handler,
    error_for_kind,
)
from datacore.exceptions.mapper import extract_columns


class FakeConnection:
    """Records rollback calls; reports an open transaction."""

    def __init__(self, open_transaction: bool = True):
        self.open_transaction = open_transaction
        self.rollbacks = 0

    def in_transaction(self) -> bool:
        return self.open_transaction

    def rollback(self) -> None:
        self.rollbacks += 1
        self.open_transaction = False


class TestErrorHierarchy:
    def test_database_error_defaults_from_kind(self):
        error = ConnectionFailedError("db down")

        assert error.kind is ErrorKind.CONNECTION_FAILED
        assert error.status_code == 503
        assert error.is_connection_error() is True
        assert error.is_constraint_violation() is False
        assert error.http_status() == 503
        assert error.user_message() == "The database is temporarily unavailable. Please try again later."

    def test_explicit_kind_and_status(self):
        error = DatabaseError("odd", kind="permission_denied", status_code=418)

        assert error.kind is ErrorKind.PERMISSION_DENIED
        assert error.is_permission_error() is True
        assert error.status_code == 418

    def test_to_dict_and_context(self):
        error = ConstraintViolationError("bad row", fields=["title"], context={"sql_state": "23514"})
        error.with_context(table="risks")

        data = error.to_dict()

        assert data == {
            "message": "bad row",
            "kind": "constraint_violation",
            "status_code": 409,
            "fields": ["title"],
            "context": {"sql_state": "23514", "table": "risks"},
        }
        assert error.sql_state == "23514"
        assert "context" not in error.to_dict(include_context=False)

    def test_payload_never_includes_context(self):
        error = DataNotFoundError("risks with ID 7 not found", context={"original_message": "raw driver text"})

        assert error.to_payload() == {"detail": "risks with ID 7 not found", "code": "data_not_found"}
        assert error.http_status() == 404

    def test_duplicate_error(self):
        error = DuplicateError("already exists", fields=["title"])

        assert isinstance(error, ConstraintViolationError)
        assert error.kind is ErrorKind.CONSTRAINT_VIOLATION
        assert error.status_code == 409
        assert error.error_code == "duplicate"
        assert str(error) == "already exists (fields: title; code: duplicate)"

    def test_input_errors_are_not_database_errors(self):
        assert not issubclass(InvalidInputError, DatabaseError)
        assert not issubclass(InvalidFieldError, DatabaseError)
        assert InvalidInputError("empty").http_status() == 422
        assert InvalidFieldError("bad", fields=["colour"]).to_payload() == {
            "detail": "bad", "code": "invalid_field", "fields": ["colour"],
        }

    @pytest.mark.parametrize("kind", list(ErrorKind))
    def test_every_kind_has_an_error_class(self, kind):
        cls = error_for_kind(kind)

        assert cls(f"{kind.value} happened").kind is kind


class TestExtractColumns:
    @pytest.mark.parametrize(
        "message, columns",
        [
            ("UNIQUE constraint failed: risks.title", ["title"]),
            ("UNIQUE constraint failed: risks.title, risks.owner", ["title", "owner"]),
            ("NOT NULL constraint failed: feedbacks.content", ["content"]),
            ('null value in column "title" violates not-null constraint', ["title"]),
            ("DETAIL:  Key (title, owner)=(a, b) already exists.", ["title", "owner"]),
            ("Column 'title' cannot be null", ["title"]),
            ("Duplicate entry 'x' for key 'risks.uq_risks_title'", ["uq_risks_title"]),
            ("FOREIGN KEY constraint failed", None),
        ],
    )
    def test_columns(self, message, columns):
        assert extract_columns(message) == columns


class TestBuildDatabaseError:
    def test_unique_violation_becomes_duplicate_error(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: risks.title"))

        error = build_database_error(exc, context={"table": "risks"})

        assert isinstance(error, DuplicateError)
        assert error.fields == ["title"]
        assert error.context["table"] == "risks"
        assert error.context["error_class"] == "IntegrityError"
        assert error.context["original_message"] == "UNIQUE constraint failed: risks.title"

    def test_credentials_in_driver_message_are_scrubbed(self):
        exc = OperationalError(
            "CONNECT", {}, Exception("could not connect to postgresql://app:s3cr3t@db:5432/risks password=s3cr3t")
        )

        error = build_database_error(exc, message="Failed to connect")

        assert isinstance(error, ConnectionFailedError)
        assert error.message == "Failed to connect"
        assert "s3cr3t" not in error.context["original_message"]

    def test_existing_database_error_passes_through(self):
        original = ConfigurationError("bad config")

        error = build_database_error(original, context={"attempt": 2})

        assert error is original
        assert error.context == {"attempt": 2}

    def test_unclassified_message(self):
        error = build_database_error(OperationalError("SELECT", {}, Exception("mystery")))

        assert isinstance(error, UnknownDatabaseError)
        assert error.status_code == 500


class TestDbErrorHandler:
    def test_maps_and_rolls_back(self):
        """
        Behavior: a SQLAlchemy error inside the block is rolled back and re-raised as a DatabaseError.
        Importance: callers outside the repository layer get the same classification as repositories.
        """
        # Arrange
        connection = FakeConnection()
        cause = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

        # Act
        with pytest.raises(ConstraintViolationError) as exc_info:
            with db_error_handler(connection, "feedbacks", context={"operation": "create"}):
                raise cause

        # Assert
        assert connection.rollbacks == 1
        assert exc_info.value.status_code == 400
        assert exc_info.value.context["table"] == "feedbacks"
        assert exc_info.value.context["operation"] == "create"
        assert exc_info.value.__cause__ is cause

    def test_repository_errors_pass_through_untouched(self):
        connection = FakeConnection()
        error = InvalidInputError("empty")

        with pytest.raises(InvalidInputError) as exc_info:
            with db_error_handler(connection, "risks"):
                raise error

        assert exc_info.value is error
        assert connection.rollbacks == 0

    def test_without_connection(self):
        with pytest.raises(ConnectionFailedError):
            with db_error_handler(None):
                raise OperationalError("SELECT 1", {}, Exception("Lost connection to MySQL server"))

    def test_no_error_no_rollback(self):
        connection = FakeConnection()

        with db_error_handler(connection, "risks"):
            pass

        assert connection.rollbacks == 0
