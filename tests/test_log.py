import logging

from thermotray.log.database import LogDBManager
from thermotray.log.handler import SQLiteHandler
from thermotray.log.setup import MainFormatter


def make_logger(name, handler):
    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    return logger


def test_sqlite_handler_writes_buffered_records_on_close(tmp_path):
    db_path = tmp_path / "logs.db"
    handler = SQLiteHandler(db_path, buffer_size=100, flush_interval=60)
    logger = make_logger("thermotray.test.sqlite", handler)

    logger.info("Sensor process started with PID 42")
    logger.warning("Sensor process silent for 10.5s, restarting...")
    logger.removeHandler(handler)
    handler.close()

    entries = LogDBManager(db_path).fetch_last_entries(10)
    assert [entry.level for entry in entries] == ["INFO", "WARNING"]
    assert entries[0].message.endswith("Sensor process started with PID 42")


def test_sqlite_handler_flushes_when_buffer_fills(tmp_path):
    db_path = tmp_path / "logs.db"
    handler = SQLiteHandler(db_path, buffer_size=2, flush_interval=60)
    logger = make_logger("thermotray.test.buffer", handler)

    logger.info("one")
    logger.info("two")

    try:
        assert len(LogDBManager(db_path).fetch_last_entries(10)) == 2
    finally:
        logger.removeHandler(handler)
        handler.close()


def test_worker_output_is_stored_under_process_name(tmp_path):
    db_path = tmp_path / "logs.db"
    handler = SQLiteHandler(db_path, buffer_size=100, flush_interval=60)
    logger = make_logger("proc.worker", handler)

    logger.info("2026-01-01 - INFO - [worker] - connected")
    logger.removeHandler(handler)
    handler.close()

    entries = LogDBManager(db_path).fetch_last_entries(1)
    assert entries[0].module == "worker"


def test_main_formatter_prints_worker_lines_raw():
    formatter = MainFormatter()
    raw = logging.LogRecord("proc.worker", logging.INFO, __file__, 1, "raw worker line", None, None)
    own = logging.LogRecord("thermotray.app", logging.INFO, __file__, 1, "started", None, None)

    assert formatter.format(raw) == "raw worker line"
    assert formatter.format(own).endswith("- INFO     - [thermotray.app] - started")
