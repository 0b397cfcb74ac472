"""Structured logging configuration.

This module initializes structlog with a stable JSON line format
so import jobs and queries emit machine-readable events. Log lines go
to stderr; stdout is reserved for command output.
"""

from __future__ import annotations

import sys
from typing import Any

import structlog

_CONFIGURED = False


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    _configure_once()
    return structlog.get_logger(name)


def _configure_once() -> None:
    """Apply the shared structlog processor chain a single time."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True
