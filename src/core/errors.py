"""Territory history exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class HistoryError(Exception):
    """Base exception for all territory history failures."""


class HistoryConfigError(HistoryError):
    """Raised for invalid runtime configuration."""


class HistoryIngestError(HistoryError):
    """Raised for source parsing and import failures."""


class HistoryStoreError(HistoryError):
    """Raised for relational store and maintenance failures."""


class HistoryRegistryError(HistoryError):
    """Raised when the external guild registry cannot answer."""


class HistoryNotFoundError(HistoryError):
    """Raised when no snapshot or event can answer a history query."""


class HistoryDependencyError(HistoryError):
    """Raised when an optional runtime dependency is missing."""


class HistoryQueryError(HistoryError):
    """Raised for invalid history query arguments."""
