"""
Logging builder: create and apply a dictConfig logging configuration and
optionally move the actual writes onto a background QueueListener.

This module:
 - builds a dictConfig mapping from Settings (make_dict_config)
 - applies it (setup_logging) and, with LOG_USE_QUEUE, swaps the real handlers
   for a QueueHandler so statement logging never waits on file IO
 - provides NonBlockingQueueHandler, which drops records instead of blocking
   when a bounded queue is full
 - runs the producer-side filters (TransactionIdFilter, RedactFilter) on the
   QueueHandler, because the transaction id lives in a contextvar of the
   producing thread and secrets must not reach the queue
 - exposes stop_queue_logging() and get_queue_stats()

Configuration knobs (Settings):
 - LOG_LEVEL, LOG_FORMAT, LOG_TO_STDOUT, LOG_DIR, LOG_MAX_BYTES,
   LOG_BACKUP_COUNT, ENABLE_SQL_LOGGING, ENV
 - LOG_USE_QUEUE: enable queue-backed logging
 - LOG_QUEUE_MAX_SIZE: > 0 for a bounded queue, 0 for unbounded
 - LOG_QUEUE_BLOCKING: with a bounded queue, block producers instead of dropping
"""

from __future__ import annotations

from pathlib import Path
import logging
import logging.config
import queue as _queue
import threading
from typing import Optional

from logging.handlers import QueueHandler, QueueListener

from ...config.settings import Settings
from ...utils.logging import get_project_name
from .formatters import JsonFormatter, ColorFormatter
from .filters import TransactionIdFilter, RedactFilter
from .handlers import (
    get_console_handler,
    get_file_handler,
    get_error_file_handler,
    get_error_console_handler,
)

STANDARD_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(transaction_id)s | %(message)s"

# Running listener and its queue, kept so shutdown can stop them.
_QUEUE_LISTENER: Optional[QueueListener] = None
_QUEUE: Optional[_queue.Queue] = None

_DROPPED_LOGS_COUNT = 0
_DROPPED_LOGS_LOCK = threading.Lock()


class NonBlockingQueueHandler(QueueHandler):
    """
    QueueHandler that never blocks the producer.

    When the bounded queue is full the record is dropped, the module-level
    drop counter is incremented and handleError() reports the failure.
    """

    def emit(self, record: logging.LogRecord) -> None:
        global _DROPPED_LOGS_COUNT
        try:
            self.queue.put_nowait(self.prepare(record))
        except _queue.Full:
            with _DROPPED_LOGS_LOCK:
                _DROPPED_LOGS_COUNT += 1
            self.handleError(record)


def get_queue_stats() -> dict:
    """Diagnostics for queue mode: dropped record count, whether a queue is active."""
    with _DROPPED_LOGS_LOCK:
        return {"dropped_logs": _DROPPED_LOGS_COUNT, "queue_present": _QUEUE is not None}


def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping for `settings`.

    The mapping includes:
      - formatters: "standard" (ColorFormatter in text mode) and "json"
      - filters: "transaction_id", "redact"
      - handlers: console plus file/error_file when writing to LOG_DIR,
        otherwise console plus error_console
      - loggers: root, "datacore", "sqlalchemy.engine"
    """
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": STANDARD_FORMAT,
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(),
        },
    }

    filters = {
        "transaction_id": {"()": TransactionIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}

    if (not settings.LOG_TO_STDOUT) and settings.LOG_DIR:
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers.keys()),
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            # Library loggers propagate to root; only the level is set here.
            "datacore": {
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            # Raw SQL echo includes bound values; keep it off unless asked for.
            "sqlalchemy.engine": {
                "level": "DEBUG" if settings.ENABLE_SQL_LOGGING else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(settings: Settings) -> None:
    """
    Initialize logging from settings, optionally switching to queue mode.

    Steps:
      1. Create LOG_DIR when writing files.
      2. Apply dictConfig(make_dict_config(settings)).
      3. Add a TransactionIdFilter on the root logger so `%(transaction_id)s`
         is always resolvable.
      4. With LOG_USE_QUEUE: detach the real handlers, start a QueueListener
         that runs them on a background thread, and attach a QueueHandler (or
         NonBlockingQueueHandler) carrying the producer-side filters to root.
    """
    global _QUEUE_LISTENER, _QUEUE

    if (not settings.LOG_TO_STDOUT) and settings.LOG_DIR:
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    stop_queue_logging()
    logging.config.dictConfig(make_dict_config(settings))
    logging.getLogger().addFilter(TransactionIdFilter())

    if not settings.LOG_USE_QUEUE:
        return

    root_logger = logging.getLogger()
    current_handlers = list(root_logger.handlers)
    if not current_handlers:
        return

    # Handlers must only run on the listener thread from now on.
    handlers_to_move = set(current_handlers)
    for logger_obj in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger_obj, logging.Logger):
            for handler in list(logger_obj.handlers):
                if handler in handlers_to_move:
                    logger_obj.removeHandler(handler)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    max_size = settings.LOG_QUEUE_MAX_SIZE or 0
    log_queue: _queue.Queue = _queue.Queue(max_size) if max_size > 0 else _queue.Queue()

    if max_size > 0 and not settings.LOG_QUEUE_BLOCKING:
        queue_handler: QueueHandler = NonBlockingQueueHandler(log_queue)
    else:
        queue_handler = QueueHandler(log_queue)

    queue_handler.addFilter(TransactionIdFilter())
    queue_handler.addFilter(RedactFilter())

    listener = QueueListener(log_queue, *current_handlers, respect_handler_level=True)
    listener.start()
    root_logger.addHandler(queue_handler)

    _QUEUE_LISTENER = listener
    _QUEUE = log_queue


def stop_queue_logging() -> None:
    """Flush and stop the background listener, if one is running."""
    global _QUEUE_LISTENER, _QUEUE
    listener = _QUEUE_LISTENER
    if listener is None:
        return

    try:
        listener.stop()
    finally:
        _QUEUE_LISTENER = None
        _QUEUE = None


__all__ = [
    "make_dict_config",
    "setup_logging",
    "stop_queue_logging",
    "get_queue_stats",
    "NonBlockingQueueHandler",
]
