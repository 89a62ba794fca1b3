"""
Assessflow Logging

Every logger in the package hangs off the ``assessflow`` root logger, so
configuring that one logger (``configure_logger``) decides the level,
format and destinations for the whole service. Components that want
attempt or reviewer identifiers on each record go through
``with_context``.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
from typing import Dict, Any, Optional, Union, Callable, TypeVar

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOGGER_NAME = "assessflow"

# Record attribute the adapter stores its context under
CONTEXT_ATTR = "data"

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'get_logger',
    'LoggerAdapter',
    'JsonFormatter',
    'with_context',
    'app_logger',
    'log_execution_time'
]


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line. Context attached by ``LoggerAdapter`` is
    merged into the top level of the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }

        context = getattr(record, CONTEXT_ATTR, None)
        if isinstance(context, dict):
            entry.update(context)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["error"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


def _build_formatter(use_json: bool) -> logging.Formatter:
    if use_json:
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT, TEXT_DATE_FORMAT)


def _file_handler(log_file: str) -> Optional[logging.Handler]:
    directory = os.path.dirname(log_file)
    try:
        if directory:
            os.makedirs(directory, exist_ok=True)
        return logging.FileHandler(log_file)
    except OSError as e:
        logging.getLogger(APP_LOGGER_NAME).warning(
            f"Logging to {log_file} disabled: {e}"
        )
        return None


def configure_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[str, int] = logging.INFO,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    (Re)configure a logger, replacing any handlers it already has.

    Args:
        name: Logger to configure; the package root by default
        level: Level name ("debug", "INFO", ...) or number
        use_json: Emit JSON lines instead of the text format
        log_file: Also append to this file; its directory is created
        console_output: Write to stdout

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers = []
    if console_output:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        handler = _file_handler(log_file)
        if handler is not None:
            handlers.append(handler)

    formatter = _build_formatter(use_json)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; names outside the package are nested under it."""
    if name == APP_LOGGER_NAME or name.startswith(APP_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(APP_LOGGER_NAME).getChild(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adapter that stamps a fixed set of identifiers (attempt, taker,
    staging record, ...) onto every record it emits.
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        super().__init__(logger, dict(context or {}))

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get('extra') or {})
        merged = dict(self.extra)
        merged.update(extra.get(CONTEXT_ATTR) or {})
        extra[CONTEXT_ATTR] = merged
        kwargs['extra'] = extra
        return msg, kwargs

    def with_context(self, **context) -> 'LoggerAdapter':
        """A new adapter carrying this adapter's context plus ``context``."""
        combined = dict(self.extra)
        combined.update(context)
        return LoggerAdapter(self.logger, combined)


def with_context(name: Optional[str] = None, **context) -> LoggerAdapter:
    """Adapter over ``name`` (or the package logger) carrying ``context``."""
    logger = get_logger(name) if name else app_logger
    return LoggerAdapter(logger, context)


def get_app_logger() -> logging.Logger:
    """
    The package root logger. The first call configures it from the
    LOG_LEVEL, LOG_JSON and LOG_FILE environment variables; the app
    factory reconfigures it from settings on startup.
    """
    logger = logging.getLogger(APP_LOGGER_NAME)
    if logger.handlers:
        return logger
    return configure_logger(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
        log_file=os.environ.get("LOG_FILE") or None,
    )


app_logger = get_app_logger()


def log_execution_time(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Decorator logging how long each call took: at debug level on success,
    at error level (then re-raising) on failure.
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            target = logger or app_logger
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                target.error(
                    f"{func.__qualname__} failed after "
                    f"{time.perf_counter() - started:.3f}s: {e}"
                )
                raise
            target.debug(f"{func.__qualname__} took {time.perf_counter() - started:.3f}s")
            return result

        return wrapper  # type: ignore

    return decorator
