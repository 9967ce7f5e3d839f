from .config import ConnectionConfig
from .drivers import DriverProfile, DRIVER_PROFILES, get_driver_profile
from .executor import StatementExecutor, StatementKind, StatementResult, QueryStats
from .schema import TableSchema
from .session import Database
from .transaction import TransactionState, get_transaction_id

__all__ = [
    "ConnectionConfig",
    "DriverProfile",
    "DRIVER_PROFILES",
    "get_driver_profile",
    "StatementExecutor",
    "StatementKind",
    "StatementResult",
    "QueryStats",
    "TableSchema",
    "Database",
    "TransactionState",
    "get_transaction_id",
]
