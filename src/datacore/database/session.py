"""
`Database`: the explicit handle repositories are constructed with.

It bundles one ConnectionManager, one TransactionState and one
StatementExecutor. Every repository built on the same Database shares the
connection, the nesting level and the query statistics. Hosts that run
several threads should either give each worker its own Database
(connection-per-worker) or rely on the TransactionState lock, which
serializes statements and whole transactions on a shared instance.

Usage:
    db = Database.from_settings(get_settings())
    risks = RiskRepository(db)

    with db.transaction():
        risks.create({...})
        risks.update(1, {...})
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TYPE_CHECKING

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine

from ..exceptions.base import RepositoryError
from .config import ConnectionConfig
from .connection import ConnectionManager
from .executor import StatementExecutor
from .transaction import TransactionState

if TYPE_CHECKING:
    from ..config.settings import Settings

logger = logging.getLogger(__name__)


class Database:
    def __init__(
        self,
        config: ConnectionConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        engine_factory: Callable[..., Engine] = create_engine,
    ):
        self.config = config
        self.manager = ConnectionManager(config, sleep=sleep, engine_factory=engine_factory)
        self.transactions = TransactionState(self.manager)
        self.executor = StatementExecutor(self.manager, self.transactions)

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs: Any) -> "Database":
        return cls(settings.connection_config(), **kwargs)

    @classmethod
    def from_mapping(cls, data: dict[str, Any], **kwargs: Any) -> "Database":
        return cls(ConnectionConfig.model_validate(data), **kwargs)

    @property
    def engine(self) -> Engine:
        return self.manager.engine

    def connection(self, force_reconnect: bool = False) -> Connection:
        return self.manager.get_connection(force_reconnect=force_reconnect)

    # -- transactions ---------------------------------------------------

    def begin(self) -> None:
        self.transactions.begin()

    def commit(self) -> None:
        self.transactions.commit()

    def rollback(self) -> None:
        self.transactions.rollback()

    def in_transaction(self) -> bool:
        return self.transactions.active

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """
        Run the block inside a (possibly nested) transaction scope.

        Commits when the block returns normally. On any exception the whole
        physical transaction is rolled back and the original exception is
        re-raised; a failing rollback is logged, never raised in its place.
        """
        self.transactions.begin()
        try:
            yield self
        except BaseException:
            self._rollback_quietly(scoped=True)
            raise
        try:
            self.transactions.commit()
        except RepositoryError:
            self._rollback_quietly(scoped=True)
            raise

    def _rollback_quietly(self, scoped: bool = False) -> None:
        try:
            self.transactions.rollback(scoped=scoped)
        except RepositoryError:
            logger.exception("db.transaction.rollback_failed", extra={"level": self.transactions.level})

    # -- observability --------------------------------------------------

    def get_query_stats(self) -> dict[str, Any]:
        return self.executor.get_query_stats()

    def reset_query_stats(self) -> None:
        self.executor.reset_query_stats()

    def close(self) -> None:
        if self.transactions.active or self.transactions.rollback_only:
            logger.warning("db.close.open_transaction", extra={"level": self.transactions.level})
            self._rollback_quietly()
        self.manager.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["Database"]
