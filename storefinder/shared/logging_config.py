"""Logging configuration and setup.

This module provides thread-safe logging configuration with file rotation
and console output.
"""

import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

from storefinder.shared.constants import LOGGING

__all__ = [
    'setup_logging',
]


_logging_lock = threading.Lock()


def setup_logging(
    log_file: str = LOGGING.LOG_FILE,
    level: int = logging.INFO,
    max_bytes: int = LOGGING.MAX_BYTES,
    backup_count: int = LOGGING.BACKUP_COUNT,
) -> None:
    """Setup root logging with a rotating file handler and a console handler.

    Idempotent and thread-safe: repeated calls never add duplicate handlers,
    but always apply ``level`` so a later ``--debug`` takes effect.

    Args:
        log_file: Path to log file
        level: Root logger level (logging.DEBUG when debug output is enabled)
        max_bytes: Maximum file size before rotation
        backup_count: Number of backup files to keep
    """
    with _logging_lock:
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        log_path = Path(log_file)

        has_file_handler = False
        for handler in root_logger.handlers[:]:
            if isinstance(handler, RotatingFileHandler) and handler.baseFilename == str(log_path.absolute()):
                if handler.maxBytes == max_bytes and handler.backupCount == backup_count:
                    has_file_handler = True
                    break
                # Configuration mismatch, reconfigure
                root_logger.removeHandler(handler)
                handler.close()

        # FileHandler is the base of every file-based handler
        has_console_handler = any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
            for h in root_logger.handlers
        )

        if has_file_handler and has_console_handler:
            return

        log_path.parent.mkdir(parents=True, exist_ok=True)
        formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

        if not has_file_handler:
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8',
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        if not has_console_handler:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            root_logger.addHandler(console_handler)
