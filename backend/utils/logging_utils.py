"""
Logging Utilities

Configures the root logger for the server (rotating file + console) and
provides a decorator that logs the start, end and failure of a job.
"""

import logging
import sys
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILENAME = "server.log"


def configure_logging(log_dir: Path, level: int = logging.INFO) -> Path:
    """
    Configure the root logger with a rotating file handler and a console handler.

    Safe to call more than once: handlers installed by a previous call are
    replaced rather than duplicated.

    Args:
        log_dir: Directory that receives the log file (created if missing)
        level: Root log level

    Returns:
        Path of the log file
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    log_formatter = logging.Formatter(LOG_FORMAT)

    # File handler with rotation (10MB per file, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(log_formatter)
    file_handler.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, '_instantcut', False):
            root_logger.removeHandler(handler)
            handler.close()

    for handler in (file_handler, console_handler):
        handler._instantcut = True
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return log_file


def log_operation(operation_name: str):
    """
    Decorator to log a coroutine's start, completion and failure.

    Args:
        operation_name: Name of the operation

    Example:
        @log_operation("trim")
        async def trim(self, input_path, ...):
            ...
    """
    def decorator(func):
        logger = logging.getLogger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            task_id = kwargs.get("task_id")
            label = f"{operation_name} [{task_id}]" if task_id else operation_name
            logger.info(f"Starting {label}")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Failed {label}: {type(e).__name__}: {e}")
                raise
            logger.info(f"Completed {label}")
            return result

        return wrapper

    return decorator
