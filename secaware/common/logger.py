"""
Application Logger

Logging setup shared by every engagement component. All loggers hang off the
``secaware`` root so a single call to ``configure_logger`` controls level,
format and destination for the whole service.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
import asyncio
from typing import Any, Callable, Optional, TypeVar, Union

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
APP_LOGGER_NAME = "secaware"

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'get_logger',
    'get_app_logger',
    'JsonFormatter',
    'app_logger',
    'log_execution_time'
]


class JsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Extra structured fields can be attached with ``extra={"data": {...}}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_object = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info:
            log_object["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        data = getattr(record, "data", None)
        if isinstance(data, dict):
            log_object.update(data)

        return json.dumps(log_object, default=str)


def configure_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[str, int] = logging.INFO,
    format_string: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure a logger with console and/or file handlers.

    Args:
        name: Logger name
        level: Log level (name or number)
        format_string: Format used when ``use_json`` is False
        date_format: Date format for the plain formatter
        use_json: Emit JSON lines instead of plain text
        log_file: Optional path of a log file
        console_output: Whether to log to stdout

    Returns:
        Configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(format_string, date_format)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except (FileNotFoundError, PermissionError) as e:
            logger.warning(f"Could not create log file {log_file}: {e}")

    return logger


def get_logger(name: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """Return ``parent.getChild(name)`` or a module logger under the app root."""
    if parent:
        return parent.getChild(name)
    if name.startswith(APP_LOGGER_NAME):
        return logging.getLogger(name)
    return app_logger.getChild(name)


def get_app_logger() -> logging.Logger:
    """
    Get or create the application logger.

    Configuration comes from ``LOG_LEVEL``, ``LOG_JSON`` and ``LOG_FILE``.
    """
    logger = logging.getLogger(APP_LOGGER_NAME)

    if not logger.handlers:
        return configure_logger(
            name=APP_LOGGER_NAME,
            level=os.environ.get("LOG_LEVEL", "INFO"),
            use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
            log_file=os.environ.get("LOG_FILE"),
            console_output=True
        )

    return logger


app_logger = get_app_logger()


def _failure_level(exc: Exception) -> int:
    """Level for a failed call: expected rejections keep their own severity, anything else is ERROR."""
    severity = getattr(getattr(exc, "severity", None), "value", None)
    if severity in ("debug", "info", "warning"):
        return getattr(logging, severity.upper())
    return logging.ERROR


def log_execution_time(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Decorator logging how long a call took (DEBUG) or when it failed.

    Failures log at ERROR, except errors carrying a lower ``severity`` (the
    package's domain rejections), which log at that severity.

    Works for both plain functions and coroutines.
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - start_time
                (logger or app_logger).log(_failure_level(e), f"{func.__name__} failed after {elapsed:.3f} seconds: {e}")
                raise
            elapsed = time.perf_counter() - start_time
            (logger or app_logger).debug(f"{func.__name__} executed in {elapsed:.3f} seconds")
            return result

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - start_time
                (logger or app_logger).log(_failure_level(e), f"{func.__name__} failed after {elapsed:.3f} seconds: {e}")
                raise
            elapsed = time.perf_counter() - start_time
            (logger or app_logger).debug(f"{func.__name__} executed in {elapsed:.3f} seconds")
            return result

        return async_wrapper if asyncio.iscoroutinefunction(func) else wrapper
    return decorator
