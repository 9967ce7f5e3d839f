"""
Handler factories for logging.dictConfig.

Each function returns a handler configuration dict; `builder.make_dict_config`
registers them under fixed names (console, file, error_file, error_console).
They are pure functions of Settings, so they are easy to unit test.

Every handler runs the "transaction_id" and "redact" filters, so whatever
destination a record reaches it carries `transaction_id` and no secrets.
"""

from pathlib import Path

from ...config.settings import Settings

HANDLER_FILTERS = ["transaction_id", "redact"]


def _formatter_name(settings: Settings) -> str:
    return "json" if settings.LOG_FORMAT == "json" else "standard"


def get_console_handler(settings: Settings) -> dict:
    """
    Console/stream handler at LOG_LEVEL.

    StreamHandler writes to sys.stderr; the formatter follows LOG_FORMAT.
    """
    return {
        "class": "logging.StreamHandler",
        "formatter": _formatter_name(settings),
        "level": settings.LOG_LEVEL,
        "filters": list(HANDLER_FILTERS),
    }


def get_file_handler(settings: Settings) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": _formatter_name(settings),
        "level": settings.LOG_LEVEL,
        "filename": str(Path(settings.LOG_DIR) / "app.log"),
        "maxBytes": settings.LOG_MAX_BYTES,
        "backupCount": settings.LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "filters": list(HANDLER_FILTERS),
    }


def get_error_file_handler(settings: Settings) -> dict:
    # error files stay structured regardless of LOG_FORMAT
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "json",
        "level": "ERROR",
        "filename": str(Path(settings.LOG_DIR) / "errors.log"),
        "maxBytes": settings.LOG_MAX_BYTES,
        "backupCount": settings.LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "filters": list(HANDLER_FILTERS),
    }


def get_error_console_handler(settings: Settings) -> dict:
    return {
        "class": "logging.StreamHandler",
        "formatter": "json",
        "level": "ERROR",
        "filters": list(HANDLER_FILTERS),
    }


__all__ = [
    "get_console_handler",
    "get_file_handler",
    "get_error_file_handler",
    "get_error_console_handler",
]
