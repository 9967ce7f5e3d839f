"""
Logging filters

Transaction id filter and secret redaction.

TransactionIdFilter
-------------------
While a physical transaction is open, `TransactionState` stores a short id in
a contextvar (see `datacore.database.transaction`). The filter copies it onto
every LogRecord as `transaction_id`, so all statements issued inside one
transaction can be correlated. Outside a transaction the sentinel "-" is used,
which keeps `%(transaction_id)s` format strings from raising KeyError.

An explicit `extra={"transaction_id": ...}` on a log call wins over the
contextvar.

RedactFilter
------------
Masks record attributes whose name looks sensitive (substring match on
password/token/secret/key/auth, the same rule the statement executor applies
to bound parameters) and recursively masks such keys inside mapping-valued
extras, e.g. `extra={"params": {"api_key": ...}}`. The filter never drops a
record.

Testing
-------
- Build a LogRecord by hand, run `filter()`, assert on the attributes.
- With no transaction open, `record.transaction_id == "-"`.
"""

import logging
from logging import LogRecord
from typing import Mapping

from ...database.transaction import get_transaction_id
from ...utils.masking import MASK, is_sensitive_key, mask_sensitive

# LogRecord attributes set by the logging module itself; never rewritten.
RESERVED_ATTRS = frozenset({
    "args", "asctime", "created", "exc_info", "exc_text", "filename", "funcName",
    "levelname", "levelno", "lineno", "message", "module", "msecs", "msg", "name",
    "pathname", "process", "processName", "relativeCreated", "stack_info",
    "thread", "threadName", "taskName", "transaction_id",
})


class TransactionIdFilter(logging.Filter):
    """
    Guarantees every LogRecord has a `transaction_id` attribute.

    Order of precedence: explicit extra, then the open transaction's id,
    then "-".
    """

    def filter(self, record: LogRecord) -> bool:
        record.transaction_id = (
            getattr(record, "transaction_id", None) or get_transaction_id() or "-"
        )
        return True


class RedactFilter(logging.Filter):
    """Scrub sensitive extras before any handler formats the record."""

    def filter(self, record: LogRecord) -> bool:
        for key, value in list(record.__dict__.items()):
            if key in RESERVED_ATTRS:
                continue
            if is_sensitive_key(key):
                record.__dict__[key] = MASK
            elif isinstance(value, Mapping):
                record.__dict__[key] = mask_sensitive(value)
        return True


__all__ = ["TransactionIdFilter", "RedactFilter", "get_transaction_id"]
