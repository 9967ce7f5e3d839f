# src/datacore/core/logging/
# ├─ __init__.py            # public API: setup_logging, make_dict_config, filters
# ├─ builder.py             # make_dict_config(settings) + setup_logging(settings) + queue mode
# ├─ formatters.py          # JsonFormatter, ColorFormatter
# ├─ filters.py             # TransactionIdFilter, RedactFilter
# └─ handlers.py            # handler dict factories (console, file, error_file, error_console)


from .builder import setup_logging, make_dict_config, stop_queue_logging, get_queue_stats
from .filters import TransactionIdFilter, RedactFilter, get_transaction_id

__all__ = [
    "setup_logging",
    "make_dict_config",
    "stop_queue_logging",
    "get_queue_stats",
    "TransactionIdFilter",
    "RedactFilter",
    "get_transaction_id",
]
