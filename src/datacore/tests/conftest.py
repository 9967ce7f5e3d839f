"""
Core pytest configuration for the entire test suite.

This module provides the database setup and logging installation needed by
every kind of test (database layer, exceptions, repositories, logging).

Domain-specific fixtures (repositories, payload factories) live in:
- tests/test_fixtures/repository_fixtures.py

Every test gets its own file-backed SQLite database under `tmp_path`, with
the tables from `datacore.models.metadata` created up front, so tests never
share rows and need no cleanup.
"""

from __future__ import annotations

# -------------------------------
# Standard library imports
# -------------------------------
import logging
from pathlib import Path
from typing import Callable, Iterator

# -------------------------------
# Early logging tuning (IMPORTANT)
# -------------------------------
# Silence noisy third-party loggers before importing modules that may initialize them.
NOISY_LOGGERS = (
    "faker",
    "faker.factory",
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "sqlalchemy.pool",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

# -------------------------------
# Third-party / project imports
# -------------------------------
import pytest

from datacore.config.settings import Settings
from datacore.core.logging.builder import setup_logging, stop_queue_logging
from datacore.database import ConnectionConfig, Database
from datacore.models import metadata

logger = logging.getLogger(__name__)


def make_settings(**overrides) -> Settings:
    """
    Settings for tests, independent of the developer's environment/.env for
    the fields that matter here (init kwargs win over environment values).
    """
    values = {
        "ENV": "testing",
        "LOG_LEVEL": "INFO",
        "LOG_FORMAT": "text",
        "LOG_TO_STDOUT": True,
        "ENABLE_SQL_LOGGING": False,
        "LOG_USE_QUEUE": False,
        "DB_DRIVER": "sqlite",
        "DB_DATABASE": ":memory:",
    }
    values.update(overrides)
    return Settings(**values)


# -------------------------------
# Logging: install application logging once per session
# -------------------------------
@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """
    Install the application's dictConfig logging for the whole session, so the
    same formatters and filters used in production are active in tests.

    pytest's caplog handler is attached per test phase, after this runs, so
    `caplog.records` keeps working.
    """
    setup_logging(make_settings())
    yield
    stop_queue_logging()


@pytest.fixture
def restore_logging():
    """For tests that reconfigure logging themselves: reinstall the test config afterwards."""
    yield
    stop_queue_logging()
    setup_logging(make_settings())


# ------------------------------------------------------------------------------------------------
# DATABASE FIXTURES
# ------------------------------------------------------------------------------------------------


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    return tmp_path / "datacore_test.db"


@pytest.fixture
def sqlite_config(sqlite_path: Path) -> ConnectionConfig:
    return ConnectionConfig(driver="sqlite", database=str(sqlite_path))


@pytest.fixture
def sleeps() -> list[float]:
    """Collects every backoff delay requested by the connection manager."""
    return []


@pytest.fixture
def make_database(sleeps: list[float]) -> Iterator[Callable[..., Database]]:
    """
    Factory for extra Database handles; every handle is closed at teardown.

    Usage:
        db = make_database(config, engine_factory=flaky_factory)
    """
    created: list[Database] = []

    def _make(config: ConnectionConfig, **kwargs) -> Database:
        kwargs.setdefault("sleep", sleeps.append)
        db = Database(config, **kwargs)
        created.append(db)
        return db

    yield _make

    for db in created:
        db.close()


@pytest.fixture
def database(sqlite_config: ConnectionConfig, make_database) -> Database:
    """
    A Database bound to a fresh SQLite file with every table created.

    Query stats are reset after schema creation, so tests start from zero.
    """
    db = make_database(sqlite_config)
    metadata.create_all(db.engine)
    db.reset_query_stats()
    logger.debug("tests.database.ready", extra={"database": sqlite_config.database})
    return db


# Repository test fixtures
from .test_fixtures.repository_fixtures import (  # noqa: E402,F401
    fixed_clock,
    risk_repository,
    feedback_repository,
    node_repository,
    sample_risk_data,
    make_risk_data,
    create_risk,
    created_risk,
    multiple_risks,
)
