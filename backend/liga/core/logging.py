"""
Structured Logging Module
Leveled JSON logging with request_id propagation.

Sinks:
- error.log: records at error severity
- combined.log: every admitted record
- console: colourised single-line output, only outside production
"""
import json
import logging
import uuid
from contextvars import ContextVar
from typing import Optional, Any, Dict, List

import click
from uvicorn.logging import ColourizedFormatter

from liga.core.config import Settings, settings as default_settings

ROOT_LOGGER_NAME = 'liga'
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

# Severity ladder, most severe first. Values slot into the stdlib scale.
HTTP = 18
VERBOSE = 15
SILLY = 5

LEVELS: Dict[str, int] = {
    'error': logging.ERROR,
    'warn': logging.WARNING,
    'info': logging.INFO,
    'http': HTTP,
    'verbose': VERBOSE,
    'debug': logging.DEBUG,
    'silly': SILLY,
}
LEVEL_NAMES: Dict[int, str] = {value: name for name, value in LEVELS.items()}

logging.addLevelName(HTTP, 'HTTP')
logging.addLevelName(VERBOSE, 'VERBOSE')
logging.addLevelName(SILLY, 'SILLY')

# Context variable for request-scoped data
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
request_start_var: ContextVar[Optional[float]] = ContextVar('request_start', default=None)


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    """Set request ID in context."""
    request_id_var.set(request_id)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid.uuid4())[:8]


def level_name(levelno: int) -> str:
    return LEVEL_NAMES.get(levelno, logging.getLevelName(levelno).lower())


def parse_level(name: str) -> int:
    try:
        return LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {name!r} (expected one of {', '.join(LEVELS)})")


class RequestContextFilter(logging.Filter):
    """Stamp the current request_id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'request_id'):
            record.request_id = get_request_id()
        return True


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, message and optional stack."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            'timestamp': self.formatTime(record, TIMESTAMP_FORMAT),
            'level': level_name(record.levelno),
            'logger': record.name,
            'message': record.getMessage(),
        }

        request_id = getattr(record, 'request_id', None)
        if request_id:
            payload['request_id'] = request_id

        context = getattr(record, 'context', None)
        if context:
            payload['context'] = context

        if record.exc_info:
            payload['stack'] = self.formatException(record.exc_info)
        elif record.stack_info:
            payload['stack'] = self.formatStack(record.stack_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


class ConsoleLogFormatter(ColourizedFormatter):
    """Human-readable `level: message {meta}` lines for the interactive sink."""

    level_name_colors = {
        logging.ERROR: lambda name: click.style(str(name), fg='red'),
        logging.WARNING: lambda name: click.style(str(name), fg='yellow'),
        logging.INFO: lambda name: click.style(str(name), fg='green'),
        HTTP: lambda name: click.style(str(name), fg='green', dim=True),
        VERBOSE: lambda name: click.style(str(name), fg='cyan'),
        logging.DEBUG: lambda name: click.style(str(name), fg='blue'),
        SILLY: lambda name: click.style(str(name), fg='magenta'),
    }

    def formatMessage(self, record: logging.LogRecord) -> str:
        name = level_name(record.levelno)
        if self.use_colors:
            name = self.color_level_name(name, record.levelno)

        meta: Dict[str, Any] = {'timestamp': self.formatTime(record, TIMESTAMP_FORMAT)}
        request_id = getattr(record, 'request_id', None)
        if request_id:
            meta['request_id'] = request_id
        context = getattr(record, 'context', None)
        if context:
            meta.update(context)

        return f"{name}: {record.getMessage()} {json.dumps(meta, default=str, ensure_ascii=False)}"


class StructuredLogger:
    """
    Leveled logger facade.
    Methods mirror the severity ladder: error, warn, info, http, verbose, debug, silly.
    Keyword arguments are recorded as structured context.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.name = name

    def log(self, level: str, message: Any, error: Optional[BaseException] = None, **extra):
        levelno = LEVELS[level]
        if not self.logger.isEnabledFor(levelno):
            return

        # An exception passed as the message is logged with its stack.
        if isinstance(message, BaseException):
            error = error or message
            message = str(message) or type(message).__name__

        exc_info = None
        if error is not None:
            exc_info = (type(error), error, error.__traceback__)

        self.logger.log(
            levelno,
            message,
            exc_info=exc_info,
            extra={'context': extra} if extra else None,
        )

    def error(self, message: Any, error: Optional[BaseException] = None, **extra):
        self.log('error', message, error, **extra)

    def exception(self, message: Any, **extra):
        """Log at error with the exception currently being handled."""
        self.logger.error(message, exc_info=True, extra={'context': extra} if extra else None)

    def warn(self, message: Any, error: Optional[BaseException] = None, **extra):
        self.log('warn', message, error, **extra)

    warning = warn

    def info(self, message: Any, **extra):
        self.log('info', message, **extra)

    def http(self, message: Any, **extra):
        self.log('http', message, **extra)

    def verbose(self, message: Any, **extra):
        self.log('verbose', message, **extra)

    def debug(self, message: Any, **extra):
        self.log('debug', message, **extra)

    def silly(self, message: Any, **extra):
        self.log('silly', message, **extra)


_installed_handlers: List[logging.Handler] = []


def configure_logging(config: Optional[Settings] = None) -> logging.Logger:
    """
    Install the sinks on the `liga` logger tree.

    Safe to call again: handlers from a previous call are closed and replaced.
    """
    config = config or default_settings
    root = logging.getLogger(ROOT_LOGGER_NAME)

    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    root.setLevel(parse_level(config.LOG_LEVEL))
    root.propagate = False

    json_formatter = JsonLogFormatter()
    context_filter = RequestContextFilter()

    error_sink = logging.FileHandler(config.LOG_ERROR_FILE, encoding='utf-8', delay=True)
    error_sink.setLevel(logging.ERROR)
    error_sink.setFormatter(json_formatter)

    combined_sink = logging.FileHandler(config.LOG_COMBINED_FILE, encoding='utf-8', delay=True)
    combined_sink.setFormatter(json_formatter)

    handlers: List[logging.Handler] = [error_sink, combined_sink]

    if not config.is_production:
        console = logging.StreamHandler()
        console.setFormatter(ConsoleLogFormatter())
        handlers.append(console)

    for handler in handlers:
        handler.addFilter(context_filter)
        root.addHandler(handler)
        _installed_handlers.append(handler)

    return root


def get_logger(name: str = ROOT_LOGGER_NAME) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)


# Pre-configured loggers for different areas
logger = get_logger()
api_logger = get_logger('liga.api')
ws_logger = get_logger('liga.realtime')
