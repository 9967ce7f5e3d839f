# src/datacore/tests/test_logging/test_builder_setup.py
import logging

from datacore.core.logging.builder import make_dict_config, setup_logging
from datacore.core.logging.formatters import ColorFormatter


# Create a minimal Settings-like object for testing
class DummySettings:
    LOG_FORMAT = "json"
    LOG_LEVEL = "INFO"
    LOG_TO_STDOUT = False
    LOG_DIR = None  # will be set in test
    LOG_MAX_BYTES = 1000
    LOG_BACKUP_COUNT = 1
    ENV = "development"
    ENABLE_SQL_LOGGING = False
    LOG_USE_QUEUE = False
    LOG_QUEUE_MAX_SIZE = 0
    LOG_QUEUE_BLOCKING = False


def test_make_dict_config_contains_handlers(tmp_path):
    settings = DummySettings()
    settings.LOG_DIR = tmp_path
    cfg = make_dict_config(settings)
    assert "console" in cfg["handlers"]
    # writing to LOG_DIR adds the file handlers
    assert "file" in cfg["handlers"]
    assert "error_file" in cfg["handlers"]
    assert "error_console" not in cfg["handlers"]
    assert cfg["handlers"]["file"]["filename"] == str(tmp_path / "app.log")
    assert "json" in cfg["formatters"]
    assert set(cfg["filters"]) == {"transaction_id", "redact"}
    # every handler runs the filters
    for handler in cfg["handlers"].values():
        assert handler["filters"] == ["transaction_id", "redact"]


def test_make_dict_config_stdout_mode():
    settings = DummySettings()
    settings.LOG_TO_STDOUT = True
    settings.LOG_FORMAT = "text"
    cfg = make_dict_config(settings)
    assert set(cfg["handlers"]) == {"console", "error_console"}
    assert cfg["handlers"]["console"]["formatter"] == "standard"
    assert cfg["formatters"]["standard"]["()"] is ColorFormatter


def test_sql_echo_logger_follows_setting():
    settings = DummySettings()
    settings.LOG_TO_STDOUT = True
    assert make_dict_config(settings)["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
    settings.ENABLE_SQL_LOGGING = True
    assert make_dict_config(settings)["loggers"]["sqlalchemy.engine"]["level"] == "DEBUG"


def test_datacore_logger_propagates():
    settings = DummySettings()
    settings.LOG_TO_STDOUT = True
    settings.LOG_LEVEL = "DEBUG"
    datacore = make_dict_config(settings)["loggers"]["datacore"]
    assert datacore == {"level": "DEBUG", "propagate": True}


def test_setup_logging_creates_log_dir(tmp_path, restore_logging):
    settings = DummySettings()
    settings.LOG_DIR = tmp_path / "logs"
    # ensure DIR does not exist
    assert not settings.LOG_DIR.exists()
    setup_logging(settings)
    # setup should create log dir
    assert settings.LOG_DIR.exists()
    # ensure root logger has handlers and the transaction id filter
    root = logging.getLogger()
    assert root.handlers
    assert any(type(f).__name__ == "TransactionIdFilter" for f in root.filters)


def test_setup_logging_writes_redacted_json(tmp_path, restore_logging):
    settings = DummySettings()
    settings.LOG_DIR = tmp_path
    setup_logging(settings)

    logging.getLogger("datacore.test").info("connected", extra={"db_password": "hunter2", "table": "risks"})
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = (tmp_path / "app.log").read_text()
    assert "connected" in text
    assert "hunter2" not in text
    assert '"table": "risks"' in text
