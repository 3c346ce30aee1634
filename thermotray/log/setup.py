import logging
import sys
from pathlib import Path
from typing import Optional

from thermotray.config import effective_settings as config
from thermotray.log.handler import SQLiteHandler

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class MainFormatter(logging.Formatter):
    """A formatter that prints worker output raw and everything else in the app format."""

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT)

    def format(self, record):
        # Lines forwarded from the worker already carry its own formatting.
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def _clear_root_handlers(root_logger: logging.Logger) -> None:
    """Closes and removes existing root handlers to prevent duplication on re-runs."""
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()


def setup_logging(console_level: int = logging.INFO, log_db_path: Optional[Path] = None) -> None:
    """
    Configures the root logger for the supervisor process.
    This sets up handlers for console and, when enabled, SQLite,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_db_path: Overrides the configured log database location.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)
    _clear_root_handlers(root_logger)

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- SQLite Handler ---
    if not config.LOG_DB_ENABLED:
        return
    db_path = log_db_path or config.LOG_DB_PATH
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        sqlite_handler = SQLiteHandler(
            db_path=db_path,
            buffer_size=config.LOG_BUFFER_SIZE,
            flush_interval=config.LOG_BUFFER_FLUSH_INTERVAL,
        )
        sqlite_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(sqlite_handler)
    except Exception as e:
        root_logger.error(f"Failed to initialize SQLite logging handler: {e}. Logging to DB will be disabled.")


def setup_worker_logging(level: int = logging.INFO) -> None:
    """
    Configures logging inside the worker process.

    The worker only writes to stderr; the supervisor forwards those lines
    into its own handlers under the 'proc.worker' logger.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _clear_root_handlers(root_logger)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)-8s - [worker] - %(message)s'))
    root_logger.addHandler(stderr_handler)
