"""Public SDK surface for the territory history engine.

This module provides a stable import path for embedders.
It re-exports the primary client and typed option models.
"""

from __future__ import annotations

from core.config import HistoryConfig
from core.types import (
    UNCLAIMED,
    BackfillOptions,
    ExchangeEvent,
    ImportOptions,
    RangedHistoryStream,
    ReconstructionResult,
    Snapshot,
    SnapshotSeries,
    TerritoryOwner,
)
from serve.compact_encoding import lookup_owner_at
from store.history_sdk import HistoryClient

__all__ = [
    "BackfillOptions",
    "ExchangeEvent",
    "HistoryClient",
    "HistoryConfig",
    "ImportOptions",
    "RangedHistoryStream",
    "ReconstructionResult",
    "Snapshot",
    "SnapshotSeries",
    "TerritoryOwner",
    "UNCLAIMED",
    "lookup_owner_at",
]
