"""
Tests for StatementExecutor: materialized results, per-kind statistics,
autocommit outside transactions, sanitized logging and error translation.
"""

import logging

import pytest
from sqlalchemy import create_engine, insert, select, text

from datacore.database import StatementKind, StatementResult
from datacore.database.executor import QueryStats
from datacore.exceptions import ConfigurationError, DuplicateError, StatementSyntaxError
from datacore.models import risks

EXECUTOR_LOGGER = "datacore.database.executor"


def risk_row(**overrides) -> dict:
    row = {"title": "Vendor lock-in", "description": "", "probability": 2, "impact": 3, "status": "identified"}
    row.update(overrides)
    return row


class TestStatementResult:
    def test_helpers(self):
        result = StatementResult(rows=[{"id": 1, "title": "a"}, {"id": 2, "title": "b"}], rowcount=2)

        assert result.first() == {"id": 1, "title": "a"}
        assert result.scalar() == 1
        assert result.column("title") == ["a", "b"]

    def test_empty_result(self):
        result = StatementResult()

        assert result.first() is None
        assert result.scalar() is None
        assert result.rowcount == -1


class TestQueryStats:
    def test_count_is_reported_as_select(self):
        stats = QueryStats()

        stats.record(StatementKind.COUNT, 0.5)
        stats.record(StatementKind.SELECT, 0.25)
        stats.record(StatementKind.DELETE, 0.25)

        assert stats.as_dict() == {"select": 2, "insert": 0, "update": 0, "delete": 1, "total_time": 1.0}

    def test_reset(self):
        stats = QueryStats()
        stats.record(StatementKind.INSERT, 0.1)

        stats.reset()

        assert stats.as_dict() == {"select": 0, "insert": 0, "update": 0, "delete": 0, "total_time": 0.0}


class TestExecute:
    def test_select_rows_are_dicts(self, database):
        result = database.executor.execute("SELECT 1 AS one, 'x' AS two")

        assert result.rows == [{"one": 1, "two": "x"}]
        assert database.get_query_stats()["select"] == 1

    def test_insert_reports_primary_key(self, database):
        result = database.executor.execute(
            insert(risks).values(risk_row()), kind=StatementKind.INSERT, want_primary_key=True
        )

        assert result.primary_key == (1,)
        assert database.get_query_stats()["insert"] == 1

    def test_statements_are_committed_outside_transactions(self, database, sqlite_path):
        """
        Behavior: with no repository transaction open, every statement is committed immediately.
        Importance: a second connection (another process) must see the row right away.
        """
        # Arrange / Act
        database.executor.execute(insert(risks).values(risk_row()), kind="insert")

        # Assert
        other = create_engine(f"sqlite:///{sqlite_path}")
        try:
            with other.connect() as conn:
                assert conn.execute(select(risks.c.title)).scalars().all() == ["Vendor lock-in"]
        finally:
            other.dispose()
        assert database.connection().in_transaction() is False

    def test_stats_accumulate_per_kind(self, database):
        executor = database.executor
        executor.execute(insert(risks).values(risk_row()), kind=StatementKind.INSERT)
        executor.execute(text("UPDATE risks SET status = 'closed'"), kind=StatementKind.UPDATE)
        executor.execute(text("SELECT COUNT(*) FROM risks"), kind=StatementKind.COUNT)
        executor.execute(text("DELETE FROM risks"), kind=StatementKind.DELETE)

        stats = database.get_query_stats()

        assert {k: stats[k] for k in ("select", "insert", "update", "delete")} == {
            "select": 1, "insert": 1, "update": 1, "delete": 1,
        }
        assert stats["total_time"] >= 0

    def test_executemany_with_list_params(self, database):
        database.executor.execute(
            insert(risks), [risk_row(title="a"), risk_row(title="b")], StatementKind.INSERT
        )

        assert database.get_query_stats()["insert"] == 1
        assert database.executor.execute("SELECT COUNT(*) AS n FROM risks").scalar() == 2


class TestSanitizedLogging:
    def test_sensitive_params_are_masked(self, database, caplog):
        """
        Behavior: bound values under sensitive names are logged as '***'.
        Importance: credentials must never reach log output.
        """
        # Arrange
        caplog.set_level(logging.DEBUG, logger=EXECUTOR_LOGGER)

        # Act
        result = database.executor.execute(
            "SELECT :password AS echo, :owner AS owner", {"password": "hunter2", "owner": "ops"}
        )

        # Assert
        assert result.first() == {"echo": "hunter2", "owner": "ops"}
        record = next(r for r in caplog.records if r.getMessage() == "db.statement.ok")
        assert record.params == {"password": "***", "owner": "ops"}
        assert record.kind == "select"
        assert "hunter2" not in caplog.text

    def test_executemany_params_are_summarized(self, database, caplog):
        caplog.set_level(logging.DEBUG, logger=EXECUTOR_LOGGER)

        database.executor.execute(insert(risks), [risk_row(), risk_row()], StatementKind.INSERT)

        record = next(r for r in caplog.records if r.getMessage() == "db.statement.ok")
        assert record.params == {"record_count": 2}


class TestFailures:
    def test_missing_table_is_configuration_error(self, database, caplog):
        with pytest.raises(ConfigurationError) as exc_info:
            database.executor.execute("SELECT * FROM missing_table WHERE secret_token = :secret_token",
                                      {"secret_token": "abc123"})

        error = exc_info.value
        assert "no such table" in error.context["original_message"]
        assert error.context["params"] == {"secret_token": "***"}
        assert "missing_table" in error.context["sql"]
        assert database.get_query_stats()["select"] == 1

        failed = [r for r in caplog.records if r.getMessage() == "db.statement.failed"]
        assert failed and failed[0].levelno == logging.ERROR
        assert failed[0].error_kind == "configuration_error"

    def test_syntax_error_is_classified(self, database):
        with pytest.raises(StatementSyntaxError):
            database.executor.execute("SELEC 1")

    def test_unique_violation_is_duplicate_error(self, database):
        database.executor.execute("CREATE TABLE tags (name TEXT UNIQUE)")
        database.executor.execute("INSERT INTO tags (name) VALUES ('infra')", kind="insert")

        with pytest.raises(DuplicateError) as exc_info:
            database.executor.execute("INSERT INTO tags (name) VALUES ('infra')", kind="insert")

        assert exc_info.value.status_code == 409
        assert exc_info.value.fields == ["name"]
        # the failed statement left no transaction behind
        assert database.connection().in_transaction() is False
