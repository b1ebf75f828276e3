"""
Logging Configuration

Handlers for the `rfp_marketplace` logger tree. Every module logs through
`logging.getLogger("rfp_marketplace.<area>")`; library loggers are left on the
root logger and only have their levels trimmed.
"""

import logging
import sys
from datetime import datetime

from config.settings import settings


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Library loggers that are too chatty at DEBUG
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncio": logging.WARNING,
    "arq": logging.INFO,
}


def setup_logging(log_level: str = "INFO", log_to_file: bool = True) -> logging.Logger:
    """
    Configure the application logger.

    Safe to call from both the API and the worker entry points: handlers from
    an earlier call are replaced rather than stacked.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Also write a dated DEBUG-level file under `data/logs/`

    Returns:
        The `rfp_marketplace` logger
    """
    app_logger = logging.getLogger("rfp_marketplace")
    app_logger.setLevel(logging.DEBUG)
    app_logger.propagate = False

    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    app_logger.addHandler(console_handler)

    if log_to_file:
        log_file = settings.logs_dir / f"rfp_marketplace_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        app_logger.addHandler(file_handler)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return app_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(f"rfp_marketplace.{name}")
