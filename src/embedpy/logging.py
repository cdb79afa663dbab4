"""Structured logging configuration."""
import datetime
import json
import logging
import sys
from typing import Any, List

import structlog
from structlog.types import EventDict, Processor

STDERR_LOG_LEVEL = "INFO"
IGNORED_LOGGERS = [
    "urllib3",
    "asyncio"
]
CALLSITE_KEYS = ("filename", "func_name", "lineno")

# Logger methods whose names are not stdlib level names
METHOD_LEVELS = {
    "exception": logging.ERROR,
    "warn": logging.WARNING,
    "fatal": logging.CRITICAL,
    "msg": logging.INFO,
}


def add_timestamp(_, __, event_dict: EventDict) -> EventDict:
    """Add ISO timestamp to the event dict."""
    if 'timestamp' not in event_dict:
        event_dict['timestamp'] = datetime.datetime.now(datetime.timezone.utc).isoformat()
    return event_dict


def level_filter(logger: Any, name: str, event_dict: EventDict) -> EventDict:
    """Filter log records based on level."""
    logger_name = getattr(logger, "name", "")
    if any(ignored in logger_name for ignored in IGNORED_LOGGERS):
        raise structlog.DropEvent
    level_no = METHOD_LEVELS.get(name) or getattr(logging, name.upper(), logging.NOTSET)
    if level_no < getattr(logging, STDERR_LOG_LEVEL):
        raise structlog.DropEvent
    return event_dict


class CompactJSONRenderer:
    """Single-line JSON renderer with minimal output."""
    def __call__(self, _: Any, __: str, event_dict: EventDict) -> str:
        items = {
            "ts": event_dict.pop("timestamp", None),
            "lvl": event_dict.pop("level", "???"),
            "msg": event_dict.pop("event", ""),
            **{k: v for k, v in event_dict.items() if k in CALLSITE_KEYS}
        }
        if other := {k: v for k, v in event_dict.items() if k not in CALLSITE_KEYS}:
            items["data"] = other
        return json.dumps(items, separators=(',', ':'), default=str)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured logging for the application.

    - non-interactive STDERR: compact JSON, filtered by level & ignored loggers
    - interactive STDERR: colored console output
    """
    global STDERR_LOG_LEVEL
    STDERR_LOG_LEVEL = level

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level)
    )
    logging.getLogger("embedpy").setLevel(getattr(logging, level))

    json_processors: List[Processor] = [
        level_filter,
        structlog.stdlib.add_log_level,
        add_timestamp,
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.format_exc_info,
        CompactJSONRenderer()
    ]

    console_processors: List[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True)
    ]

    structlog.configure(
        processors=console_processors if sys.stderr.isatty() else json_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
