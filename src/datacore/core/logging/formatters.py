"""
Custom logging formatters.

  - JsonFormatter: one JSON object per line for log collectors. Carries the
    service/env/version fields, the transaction id and every `extra` passed
    to the logging call (repository and executor events put their structured
    data there: table, operation, kind, elapsed_ms, ...).

  - ColorFormatter: compact ANSI-colored lines for local development.

Both are wired by `builder.make_dict_config`; `LOG_FORMAT` picks which one the
console handler uses.

Neither formatter redacts anything. Secrets are removed earlier, by
`RedactFilter` and by the executor's parameter sanitization.
"""

import json
import logging
from typing import Any
from logging import LogRecord

from ...utils.logging import DISTRIBUTION_NAME, get_project_version

# Attributes every LogRecord has; anything else on the record is an extra.
STANDARD_ATTRS = frozenset({
    "args", "created", "exc_info", "exc_text", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "msg", "name", "pathname", "process",
    "processName", "relativeCreated", "stack_info", "thread", "threadName",
    "taskName", "message", "asctime",
})


class JsonFormatter(logging.Formatter):
    """
    Structured JSON formatter.

    Construction:
      - env: environment name ("development", "production", ...).
      - service: logical service name; defaults to the distribution name.
      - datefmt: passed to logging.Formatter (used by formatTime).

    Non-serializable extras are converted with str(); format() never raises
    on odd values.
    """

    def __init__(self, *, env: str | None = None, service: str | None = None, datefmt: str | None = None):
        super().__init__(datefmt=datefmt)
        self.env = env
        self.service = service or DISTRIBUTION_NAME

    def format(self, record: LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "pathname": record.pathname,
            "lineno": record.lineno,
            "transaction_id": getattr(record, "transaction_id", "-"),
            "service": self.service,
            "env": self.env,
            "version": get_project_version(),
        }

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)

        for key, value in record.__dict__.items():
            if key in log_record or key in STANDARD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_record[key] = value
            except (TypeError, ValueError):
                log_record[key] = str(value)

        return json.dumps(log_record, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """
    Development-friendly colored formatter:

        TIMESTAMP | LEVEL | LOGGER | TRANSACTION_ID | MESSAGE

    Exceptions are appended on the following lines.
    """

    COLOR_CODES = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;41m",
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record: LogRecord) -> str:
        color = self.COLOR_CODES.get(record.levelname, "")
        reset = self.COLOR_CODES["RESET"]
        timestamp = self.formatTime(record, self.datefmt)

        base = (
            f"{timestamp} | {color}{record.levelname:<8}{reset} | "
            f"{record.name:<32} | "
            f"{getattr(record, 'transaction_id', '-'):<12} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            base = base + "\n" + self.formatException(record.exc_info)

        return base


__all__ = ["JsonFormatter", "ColorFormatter"]
