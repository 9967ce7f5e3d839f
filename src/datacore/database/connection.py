"""
Connection manager: owns the single live database connection.

The manager builds a SQLAlchemy engine (NullPool, so closing the connection
really closes it) from a ConnectionConfig and hands out one Connection. It
re-opens the connection when asked to, when the driver reported it as
invalidated, or when the liveness probe fails.

Connect failures are classified. Configuration-type failures (unknown
database, bad credentials, unknown host, missing driver module) are raised at
once; anything else is retried with a bounded sleep of
`min(attempt, retry_max_delay)` seconds between attempts.
"""

import logging
import time
from typing import Any, Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from ..exceptions.base import (
    ConfigurationError,
    ConnectionFailedError,
    DatabaseError,
    ErrorKind,
)
from ..exceptions.classifier import classify_error
from ..exceptions.mapper import build_database_error
from .config import ConnectionConfig
from .drivers import DriverProfile, get_driver_profile

logger = logging.getLogger(__name__)

# Failures that retrying cannot fix.
NON_RETRYABLE_KINDS = frozenset({
    ErrorKind.CONFIGURATION_ERROR,
    ErrorKind.PERMISSION_DENIED,
    ErrorKind.SYNTAX_ERROR,
})


class ConnectionManager:
    """
    Owns one SQLAlchemy Connection for a ConnectionConfig.

    Args:
        config: validated, immutable connection settings.
        sleep: function used for backoff between attempts (injectable for tests).
        engine_factory: callable with the signature of `sqlalchemy.create_engine`.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        engine_factory: Callable[..., Engine] = create_engine,
    ):
        self.config = config
        self._sleep = sleep
        self._engine_factory = engine_factory
        self._engine: Engine | None = None
        self._connection: Connection | None = None
        self._last_checked: float | None = None
        self.last_connect_ms: float | None = None
        self.connect_attempts = 0
        self.connect_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def profile(self) -> DriverProfile:
        return get_driver_profile(self.config.driver)

    @property
    def engine(self) -> Engine:
        return self._get_engine()

    @property
    def dialect(self):
        return self._get_engine().dialect

    def current_connection(self) -> Connection | None:
        """The open connection, without connecting or probing."""
        return self._connection

    def is_connected(self) -> bool:
        conn = self._connection
        return conn is not None and not conn.closed and not conn.invalidated

    def get_connection(self, force_reconnect: bool = False) -> Connection:
        """
        Return the live connection, opening (or re-opening) it when needed.

        Raises:
            ConfigurationError: invalid config, unknown driver or a
                configuration-type connect failure (never retried).
            ConnectionFailedError: transient failures outlasted the retry budget.
        """
        if force_reconnect and self._connection is not None:
            logger.info("db.connection.force_reconnect", extra=self._log_target())
            self._discard()

        if self.is_connected():
            if self._is_alive():
                return self._connection
            logger.warning("db.connection.stale", extra=self._log_target())
            self._discard()

        self._connection = self._create_connection()
        return self._connection

    def ping(self) -> bool:
        """
        Liveness probe: one trivial round trip on the current connection.

        When the connection was idle the implicit transaction opened by the
        probe is rolled back again, so the caller sees no state change.
        """
        conn = self._connection
        if conn is None or conn.closed:
            return False

        was_open = conn.in_transaction()
        try:
            conn.exec_driver_sql(self.profile.probe_sql)
            if not was_open:
                conn.rollback()
        except SQLAlchemyError as exc:
            logger.warning(
                "db.connection.ping_failed",
                extra={**self._log_target(), "error_class": exc.__class__.__name__},
            )
            return False

        self._last_checked = time.monotonic()
        return True

    def invalidate(self) -> None:
        """Forget the current connection; the next checkout reconnects."""
        if self._connection is not None:
            logger.warning("db.connection.invalidated", extra=self._log_target())
        self._discard()

    def close(self) -> None:
        self._discard()
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        logger.info("db.connection.closed", extra=self._log_target())

    def connection_info(self) -> dict[str, Any]:
        """Masked connection details for diagnostics; never includes the password."""
        url = self.profile.build_url(self.config)
        return {
            "driver": self.config.driver,
            "url": url.render_as_string(hide_password=True),
            "connected": self.is_connected(),
            "last_connect_ms": self.last_connect_ms,
            "connect_attempts": self.connect_attempts,
            "connect_count": self.connect_count,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _log_target(self) -> dict[str, Any]:
        return {
            "driver": self.config.driver,
            "host": self.config.host,
            "database": self.config.database,
        }

    def _is_alive(self) -> bool:
        conn = self._connection
        # never probe in the middle of a caller's transaction
        if conn.in_transaction():
            return True
        interval = self.config.ping_interval
        if interval > 0 and self._last_checked is not None:
            if time.monotonic() - self._last_checked < interval:
                return True
        return self.ping()

    def _get_engine(self) -> Engine:
        if self._engine is not None:
            return self._engine

        self.config.validate_for_driver()
        profile = self.profile
        url = profile.build_url(self.config)
        try:
            self._engine = self._engine_factory(
                url,
                connect_args=profile.connect_args(self.config),
                poolclass=NullPool,
                echo=self.config.echo,
            )
        except (NoSuchModuleError, ImportError) as exc:
            raise ConfigurationError(
                f"Database driver for '{self.config.driver}' is not available",
                context={"config": self.config.masked(), "dialect": profile.sqlalchemy_driver,
                         "original_message": str(exc)},
            ) from exc
        return self._engine

    def _create_connection(self) -> Connection:
        config = self.config
        engine = self._get_engine()
        profile = self.profile
        max_attempts = config.retry_attempts
        last_error: DatabaseError | None = None

        for attempt in range(1, max_attempts + 1):
            start = time.perf_counter()
            try:
                connection = engine.connect()
            except (SQLAlchemyError, OSError) as exc:
                found = classify_error(exc)
                error = build_database_error(
                    exc,
                    message=f"Failed to connect to {config.driver} database",
                    context={"attempt": attempt, "config": config.masked()},
                    classification=found,
                )
                if found.kind in NON_RETRYABLE_KINDS:
                    logger.error(
                        "db.connect.fatal",
                        extra={**self._log_target(), "attempt": attempt, "error_kind": found.kind.value},
                    )
                    if found.kind is ErrorKind.CONFIGURATION_ERROR:
                        raise error from exc
                    raise ConfigurationError(
                        error.message, context=error.context
                    ).with_context(cause_kind=found.kind.value) from exc

                last_error = error
                logger.warning(
                    "db.connect.retry",
                    extra={
                        **self._log_target(),
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error_kind": found.kind.value,
                    },
                )
                if attempt < max_attempts:
                    self._sleep(min(attempt, config.retry_max_delay))
                continue

            self.last_connect_ms = (time.perf_counter() - start) * 1000
            self.connect_attempts = attempt
            self.connect_count += 1
            logger.info(
                "db.connect.success",
                extra={
                    **self._log_target(),
                    "attempt": attempt,
                    "duration_ms": round(self.last_connect_ms, 3),
                },
            )
            self._run_session_statements(connection, profile)
            self._last_checked = time.monotonic()
            return connection

        self.connect_attempts = max_attempts
        logger.error("db.connect.exhausted", extra={**self._log_target(), "attempts": max_attempts})
        context = {"attempts": max_attempts, "config": config.masked()}
        if last_error is not None:
            context["original_message"] = last_error.context.get("original_message")
            if last_error.sql_state:
                context["sql_state"] = last_error.sql_state
        raise ConnectionFailedError(
            f"Could not connect to {config.driver} database after {max_attempts} attempt(s)",
            context=context,
        )

    def _run_session_statements(self, connection: Connection, profile: DriverProfile) -> None:
        """Best-effort post-connect setup; failures are logged, never raised."""
        for statement in profile.session_statements(self.config):
            try:
                connection.exec_driver_sql(statement)
            except SQLAlchemyError as exc:
                logger.warning(
                    "db.connect.session_init_failed",
                    extra={**self._log_target(), "statement": statement,
                           "error_class": exc.__class__.__name__},
                )
                if connection.in_transaction():
                    connection.rollback()
        if connection.in_transaction():
            connection.commit()

    def _discard(self) -> None:
        conn, self._connection = self._connection, None
        self._last_checked = None
        if conn is None:
            return
        try:
            conn.close()
        except SQLAlchemyError:
            logger.warning("db.connection.close_failed", extra=self._log_target(), exc_info=True)


__all__ = ["ConnectionManager", "NON_RETRYABLE_KINDS"]
