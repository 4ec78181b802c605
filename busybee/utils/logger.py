"""
Logging utilities with size-based file rotation and log-safe value rendering.

Key Features:
    - Console plus rotating file handler shared by every named logger
    - Rotation errors never take the service down
    - Dated log directories, pruned after a week
    - safe_log_value() for anything that originates from a client
"""

import datetime
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_DIR = Path(os.getenv("BUSYBEE_LOG_DIR", "logs"))
LOG_FILE_BASENAME = "busybee"
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() not in ("0", "false", "no")

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

MAX_LOG_SIZE_BYTES = 5 * 1024 * 1024
MAX_BACKUP_COUNT = 10
KEEP_LOG_DAYS = 7

MAX_LOG_VALUE_LENGTH = 64

# One log file per process run, shared by all loggers
_GLOBAL_LOG_FILE: Path | None = None
_shared_file_handler: logging.Handler | None = None


class SafeRotatingFileHandler(RotatingFileHandler):
    """Size-based rotation handler that keeps writing when a rollover fails."""

    def doRollover(self):
        try:
            super().doRollover()
        except OSError as e:
            sys.stderr.write(
                f"Log rotation failed: {e}. Continuing with current log file.\n"
            )
            sys.stderr.flush()


def _get_log_level(level_str: str) -> int:
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(level_str.upper(), logging.INFO)


def _log_file_path() -> Path:
    global _GLOBAL_LOG_FILE
    if _GLOBAL_LOG_FILE is None:
        now = datetime.datetime.now()
        date_dir = LOG_DIR / now.strftime("%Y-%m-%d")
        date_dir.mkdir(parents=True, exist_ok=True)
        run_timestamp = now.strftime("%Y-%m-%d_%H-%M-%S")
        _GLOBAL_LOG_FILE = date_dir / f"{LOG_FILE_BASENAME}_{run_timestamp}.log"
    return _GLOBAL_LOG_FILE


def _get_file_handler() -> logging.Handler | None:
    global _shared_file_handler
    if not LOG_TO_FILE:
        return None
    if _shared_file_handler is None:
        try:
            handler = SafeRotatingFileHandler(
                _log_file_path(),
                maxBytes=MAX_LOG_SIZE_BYTES,
                backupCount=MAX_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as e:
            sys.stderr.write(f"File logging disabled: {e}\n")
            return None
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        _shared_file_handler = handler
        cleanup_old_logs(keep_days=KEEP_LOG_DAYS)
    return _shared_file_handler


def setup_logger(name: str, level: str | None = None) -> logging.Logger:
    """Set up logger with both console and file handlers."""
    logger = logging.getLogger(name)

    log_level = _get_log_level(level or DEFAULT_LOG_LEVEL)
    logger.setLevel(log_level)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    logger.addHandler(console_handler)

    file_handler = _get_file_handler()
    if file_handler is not None:
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def safe_log_value(value: object | None) -> str:
    """Render a client-controlled value so it cannot forge or flood log lines."""
    if value is None:
        return "-"
    text = str(value)
    if not text.strip():
        return "-"
    text = text.replace("\r", "_").replace("\n", "_").replace("\t", "_")
    if len(text) > MAX_LOG_VALUE_LENGTH:
        return text[:MAX_LOG_VALUE_LENGTH] + "..."
    return text


def cleanup_old_logs(keep_days: int = KEEP_LOG_DAYS):
    """Remove dated log directories older than ``keep_days``."""
    if not LOG_DIR.is_dir():
        return
    cutoff_time = datetime.datetime.now() - datetime.timedelta(days=keep_days)
    deleted_count = 0
    failed_count = 0

    for date_dir in LOG_DIR.iterdir():
        if not date_dir.is_dir():
            continue
        try:
            dir_date = datetime.datetime.strptime(date_dir.name, "%Y-%m-%d")
        except ValueError:
            # Not one of ours
            continue
        if dir_date >= cutoff_time:
            continue
        for log_file in date_dir.iterdir():
            try:
                log_file.unlink()
                deleted_count += 1
            except OSError:
                failed_count += 1
        try:
            date_dir.rmdir()
        except OSError:
            failed_count += 1

    if deleted_count > 0 or failed_count > 0:
        print(
            f"Log cleanup completed: {deleted_count} files deleted, {failed_count} files failed to delete"
        )
