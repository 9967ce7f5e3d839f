# src/datacore/tests/test_logging/test_queue_logging.py
import logging
import time
from pathlib import Path
from types import SimpleNamespace

from datacore.core.logging.builder import get_queue_stats, setup_logging, stop_queue_logging
from datacore.database import get_transaction_id


def make_test_settings(tmp_path: Path, **overrides):
    # Build a lightweight settings object for tests (duck-typed)
    s = SimpleNamespace()
    s.ENV = "testing"
    s.LOG_LEVEL = "DEBUG"
    s.LOG_FORMAT = "json"
    s.LOG_TO_STDOUT = False     # write to files, not stdout
    s.LOG_DIR = tmp_path        # Path-like or str
    s.LOG_MAX_BYTES = 1_000_000
    s.LOG_BACKUP_COUNT = 1
    s.ENABLE_SQL_LOGGING = False
    s.LOG_USE_QUEUE = True      # enable queue for the test
    s.LOG_QUEUE_MAX_SIZE = 0
    s.LOG_QUEUE_BLOCKING = False
    for key, value in overrides.items():
        setattr(s, key, value)
    return s


def test_queue_listener_writes_file(tmp_path, database, restore_logging):
    # Ensure previous listener (if any) is stopped before test starts
    stop_queue_logging()

    settings = make_test_settings(tmp_path)

    # Initialize logging (this will create handlers, start QueueListener, etc.)
    setup_logging(settings)
    assert get_queue_stats()["queue_present"] is True

    logger = logging.getLogger("datacore.test.queue")

    # Emit logs inside a transaction so they carry its id
    with database.transaction():
        transaction_id = get_transaction_id()
        for i in range(10):
            logger.info("test message %d", i, extra={"iteration": i, "secret_token": "abc123"})

    # Give listener a small moment (not strictly necessary if we stop it)
    time.sleep(0.05)

    # Stop and flush the queue listener; important to ensure logs are written
    stop_queue_logging()
    assert get_queue_stats()["queue_present"] is False

    # Assert the file exists and contains the logs
    app_log = Path(settings.LOG_DIR) / "app.log"
    assert app_log.exists(), "app.log should exist after logging"
    text = app_log.read_text()
    assert "test message 0" in text
    assert "iteration" in text
    assert transaction_id in text  # transaction id captured on the producer thread
    assert "abc123" not in text    # redacted before reaching the queue


def test_bounded_non_blocking_queue(tmp_path, restore_logging):
    settings = make_test_settings(tmp_path, LOG_QUEUE_MAX_SIZE=100)
    setup_logging(settings)

    root = logging.getLogger()
    assert [type(h).__name__ for h in root.handlers] == ["NonBlockingQueueHandler"]

    logging.getLogger("datacore.test.queue").warning("bounded")
    stop_queue_logging()

    assert "bounded" in (tmp_path / "app.log").read_text()
