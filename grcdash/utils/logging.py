"""Structured logging for grcdash: structlog processors, stdout and a rotating file.

Every event carries the service name and version. Loggers are bound to a
component name, and request handlers bind the viewer identity into the
context so layout and render events can be traced to a user.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

import structlog

from .. import __version__

SERVICE_NAME = "grcdash"
LOG_FILE_NAME = "grcdash.log"


def add_service_context(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logging(
    debug: bool = False,
    log_dir: str = "logs",
    log_max_bytes: int = 10_000_000,
    log_backup_count: int = 5,
) -> None:
    """Configure structlog and the root handlers.

    Debug mode renders console lines; otherwise each event is one JSON
    object. The file handler is skipped when ``log_dir`` cannot be created.
    """
    level = logging.DEBUG if debug else logging.INFO
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_context,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(_handler(logging.StreamHandler(sys.stdout), level))

    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME),
            maxBytes=log_max_bytes,
            backupCount=log_backup_count,
            encoding="utf-8",
        )
        root.addHandler(_handler(file_handler, level))
    except OSError:
        root.warning("log_dir_unavailable: %s", log_dir)


def bind_viewer(user_id: str, role: str) -> None:
    """Attach the requesting viewer to every event logged for this request."""
    structlog.contextvars.bind_contextvars(user_id=user_id, role=role)


def get_logger(name: str) -> structlog.BoundLogger:
    """A logger whose events name the emitting component."""
    return structlog.get_logger(name, component=name)
