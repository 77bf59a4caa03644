"""
Logging setup shared by the admin client and the image proxy.

Each process logs to its own rotating file (``admin.log`` or ``proxy.log``)
in the user data directory, and optionally to the console. Autosave
transitions are logged at DEBUG, so ``debug_mode`` is the switch for
tracing a field's idle/dirty/saving/saved cycle.
"""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from atelier.core.paths import get_user_data_path

LOG_SUBDIR = "logs"
ADMIN_LOG_NAME = "admin"
PROXY_LOG_NAME = "proxy"
MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_name: str, log_dir: Optional[str] = None) -> str:
    """Returns the file a process named ``log_name`` writes to."""
    directory = log_dir or get_user_data_path(LOG_SUBDIR)
    return os.path.join(directory, f"{log_name}.log")


def setup_logging(
    debug_mode: bool = False,
    log_to_console: bool = True,
    log_dir: Optional[str] = None,
    log_name: str = ADMIN_LOG_NAME,
) -> str:
    """
    Replaces the root logger's handlers with a rotating file handler and,
    optionally, a console handler. Call once per process.

    Args:
        debug_mode: Log at DEBUG instead of INFO.
        log_to_console: Also log to stderr.
        log_dir: Directory for the log file. Defaults to ``<user data>/logs``.
        log_name: Base name of the log file.

    Returns:
        str: Path of the log file.
    """
    path = log_file_path(log_name, log_dir)
    os.makedirs(os.path.dirname(path), exist_ok=True)

    level = logging.DEBUG if debug_mode else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)

    file_handler = RotatingFileHandler(
        path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    logging.getLogger(__name__).info(
        f"{log_name} started {datetime.now().isoformat(timespec='seconds')} "
        f"(level {logging.getLevelName(level)})"
    )
    return path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Flushes and closes every handler."""
    logging.shutdown()
