"""
Logging configuration for the markdown viewer.

When `mdviewer-watch` runs, stdout carries the notification stream (one JSON
object per line), so log records never go there. They go to a daily file
~/.mdviewer/logs/mdviewer-YYYY-MM-DD.log and, on request, to stderr.
"""

import logging
import logging.handlers
import sys
from datetime import date
from pathlib import Path
from typing import Optional

LOGGER_NAME = "mdviewer"
DEFAULT_LOG_DIR = Path.home() / ".mdviewer" / "logs"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class FlushingHandler(logging.handlers.TimedRotatingFileHandler):
    """Daily rotating file handler that flushes after every record."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def _is_stderr_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stderr


def _add_file_handler(logger: logging.Logger, log_dir: Path, backup_count: int) -> Path:
    log_file = log_dir / f"mdviewer-{date.today().isoformat()}.log"
    handler = FlushingHandler(
        log_file,
        when="midnight",
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return log_file


def _add_stderr_handler(logger: logging.Logger) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)


def setup_logging(
    log_dir: Optional[Path] = None,
    level: int = logging.INFO,
    backup_count: int = 30,
    console: bool = False,
) -> logging.Logger:
    """
    Configure the "mdviewer" logger.

    Calling it again is harmless: the file handler is only added once, and a
    later call with console=True only adds the missing stderr handler.

    Args:
        log_dir: Where log files go (default: ~/.mdviewer/logs)
        level: Level for the "mdviewer" logger (default: INFO)
        backup_count: Rotated files to keep, one per day (default: 30)
        console: Also write records to stderr

    Returns:
        The configured "mdviewer" logger
    """
    log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not any(isinstance(h, FlushingHandler) for h in logger.handlers):
        log_file = _add_file_handler(logger, log_dir, backup_count)
        logger.info("=" * 60)
        logger.info("Markdown viewer - Logging Initialized")
        logger.info(f"Writing {logging.getLevelName(level)} and above to {log_file}")
        logger.info(f"Rotating at midnight, {backup_count} days kept")
        logger.info("=" * 60)

    if console and not any(_is_stderr_handler(h) for h in logger.handlers):
        _add_stderr_handler(logger)
        logger.info("Console logging enabled")

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Logger under the "mdviewer" namespace (the package logger by default)."""
    return logging.getLogger(name)
