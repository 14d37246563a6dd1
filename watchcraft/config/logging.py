"""
Structured logging configuration using structlog.

Console output for development and JSON lines elsewhere. Audit records go
to the ``watchcraft.audit`` logger, which keeps its own level and can be
written to a separate file so the trail survives a quiet root logger.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

from watchcraft.config.settings import get_settings

AUDIT_LOGGER = "watchcraft.audit"


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add application context to log events."""
    settings = get_settings()
    event_dict["app"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["environment"] = settings.environment
    event_dict.setdefault("backend", settings.storage.backend)
    return event_dict


def tag_audit_records(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mark events from the audit logger so they can be filtered downstream."""
    if event_dict.get("logger") == AUDIT_LOGGER:
        event_dict["audit"] = True
    return event_dict


def configure_audit_logger(level: str, log_file: Path | None = None) -> logging.Logger:
    """
    Set up the stdlib side of the audit logger.

    With ``log_file`` the records are written there (one rendered event per
    line) and no longer propagate to the root handlers. Calling this again
    replaces the previous handler.
    """
    audit = logging.getLogger(AUDIT_LOGGER)
    audit.setLevel(getattr(logging, level))
    for handler in list(audit.handlers):
        audit.removeHandler(handler)
        handler.close()

    if log_file is None:
        audit.propagate = True
        return audit

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit.addHandler(handler)
    audit.propagate = False
    return audit


def configure_logging() -> None:
    """Configure structlog for the application."""
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        tag_audit_records,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_app_context,
    ]

    if settings.environment == "development" and settings.audit_log_file is None:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        # Audit files are always JSON lines
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    configure_audit_logger(settings.audit_log_level, settings.audit_log_file)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
