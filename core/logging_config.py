"""
Braindump Logging

Provides:
- JSON lines output for the API server and log shippers
- Compact colored console output for the CLI
- A timing decorator for sync and search entry points

Everything goes to stderr; `braindump search --json` keeps stdout clean.

Usage:
    from core.logging_config import setup_logging, get_logger

    setup_logging('INFO', json_format=False)

    logger = get_logger(__name__)
    logger.info('Synced note', extra={'note_id': 'x-coredata://...'})
"""

import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone
from functools import wraps

# Present on every LogRecord; anything else was passed through `extra`.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

# Context keys the console formatter appends after the message, in this order.
_CONSOLE_CONTEXT = ('note_id', 'request_id', 'status_code', 'duration_ms')

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ('sentence_transformers', 'transformers', 'urllib3', 'httpx', 'filelock', 'werkzeug')


def _extras(record):
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and not key.startswith('_')
    }


# =============================================================================
# Formatters
# =============================================================================

class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        entry = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(_extras(record))

        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': ''.join(traceback.format_exception(*record.exc_info)),
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """
    Short console lines: `12:04:31 WARNING sync.notes_sync  message  note_id=n1`.

    Colors are only emitted when `use_color` is set (a tty).
    """

    LEVEL_COLORS = {
        logging.DEBUG: '\033[2m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, use_color=True):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        level = f'{record.levelname:<8}'
        if self.use_color:
            level = f'{self.LEVEL_COLORS.get(record.levelno, "")}{level}{self.RESET}'

        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        line = f'{stamp} {level} {record.name}  {record.getMessage()}'

        context = [
            f'{key}={getattr(record, key)}'
            for key in _CONSOLE_CONTEXT if hasattr(record, key)
        ]
        if context:
            line += '  ' + ' '.join(context)

        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


# =============================================================================
# Setup
# =============================================================================

def setup_logging(level='INFO', json_format=False, stream=None):
    """
    Install a single stderr handler on the root logger.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines instead of console text
        stream: Destination (defaults to sys.stderr)

    Returns:
        The root logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f'Unknown log level: {level}')

    stream = stream or sys.stderr
    handler = logging.StreamHandler(stream)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(use_color=getattr(stream, 'isatty', lambda: False)()))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    return root


def get_logger(name):
    """Get a logger with the given name."""
    return logging.getLogger(name)


def log_performance(logger_name=None):
    """
    Log how long each call of the wrapped function took, at DEBUG.

    Usage:
        @log_performance('braindump.search')
        def search(self, query, limit=10):
            ...
    """
    def decorator(func):
        logger = get_logger(logger_name or func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            outcome = 'failed'
            try:
                result = func(*args, **kwargs)
                outcome = 'completed'
                return result
            finally:
                logger.debug(
                    f'{func.__qualname__} {outcome}',
                    extra={
                        'function': func.__qualname__,
                        'duration_ms': int((time.perf_counter() - started) * 1000),
                    }
                )

        return wrapper
    return decorator
