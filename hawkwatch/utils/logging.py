"""
Structured logging for the monitoring subsystem.

Components log through structlog loggers obtained from ``get_logger``. Events
are rendered by structlog and handed to the standard library logging tree,
where a console handler (JSON, plain text or colored) and an optional
rotating JSON file handler write them out.
"""

import json
import logging
import logging.handlers
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import structlog


class LogLevel(Enum):
    """Log levels for structured logging."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def numeric(self) -> int:
        return logging.getLevelName(self.value.upper())


class LogFormat(Enum):
    """Console output formats."""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


@dataclass
class LoggingConfig:
    """Runtime logging settings."""
    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    log_file: Optional[str] = None
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = True
    json_output: bool = False


# LogRecord attributes that are not user-supplied extras
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}

_LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
_RESET = '\033[0m'

_active_config: Optional[LoggingConfig] = None
_installed_handlers: List[logging.Handler] = []


class JSONFormatter(logging.Formatter):
    """One JSON document per record; extras are nested under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        document: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname.lower(),
            'logger': record.name,
            'message': record.getMessage(),
            'thread': record.threadName,
            'process': record.process,
        }

        if record.exc_info:
            document['exception'] = self.formatException(record.exc_info)

        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRIBUTES}
        if extra:
            document['extra'] = extra

        return json.dumps(document, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Terminal formatter coloring the level name."""

    def __init__(self):
        super().__init__(datefmt='%H:%M:%S')

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno, '')
        line = (
            f"{self.formatTime(record, self.datefmt)}.{int(record.msecs):03d} "
            f"{color}{record.levelname:<8}{_RESET} {record.name}: {record.getMessage()}"
        )

        if record.levelno >= logging.ERROR:
            line += f" ({record.filename}:{record.lineno})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def _processors(config: LoggingConfig) -> List[Any]:
    renderer = (
        structlog.processors.JSONRenderer()
        if config.json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def _console_handler(config: LoggingConfig) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)

    if config.format == LogFormat.JSON:
        handler.setFormatter(JSONFormatter())
    elif config.format == LogFormat.COLORED:
        handler.setFormatter(ColoredFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)-8s %(name)s: %(message)s'))

    return handler


def _file_handler(config: LoggingConfig) -> logging.Handler:
    path = Path(config.log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding='utf-8'
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(config: Optional[LoggingConfig] = None) -> LoggingConfig:
    """
    Configure structlog and the root logger.

    Calling it again replaces the previous handlers, so the CLI can reconfigure
    logging once the configuration file has been read.

    Args:
        config: Logging settings (defaults apply when omitted)

    Returns:
        The settings now in effect
    """
    global _active_config, _installed_handlers
    config = config or LoggingConfig()

    structlog.configure(
        processors=_processors(config),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    for handler in _installed_handlers:
        handler.close()
    root.setLevel(config.level.numeric)

    _installed_handlers = []
    if config.console_output:
        _installed_handlers.append(_console_handler(config))
    if config.log_file:
        _installed_handlers.append(_file_handler(config))

    for handler in _installed_handlers:
        root.addHandler(handler)

    _active_config = config
    return config


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger for ``name``, configuring defaults on first use."""
    if _active_config is None:
        setup_logging()
    return structlog.get_logger(name)


@contextmanager
def performance_context(operation_name: str, slow_ms: Optional[float] = None) -> Iterator[None]:
    """
    Log how long the wrapped block took.

    Failures are logged with their duration and re-raised. When ``slow_ms``
    is given, a completed block slower than that is logged as a warning.
    """
    logger = get_logger("hawkwatch.performance")
    start = time.perf_counter()

    try:
        yield
    except Exception as e:
        logger.error(
            "Operation failed",
            operation=operation_name,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            error=str(e)
        )
        raise

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    if slow_ms is not None and duration_ms > slow_ms:
        logger.warning("Operation slow", operation=operation_name, duration_ms=duration_ms)
    else:
        logger.debug("Operation completed", operation=operation_name, duration_ms=duration_ms)
