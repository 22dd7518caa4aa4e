"""Durable state: rename history, metadata store and duplicate index."""

from __future__ import annotations

from .duplicates import DuplicateIndex
from .errors import EntryNotFoundError, LedgerWriteError, StateError, StoreError
from .history import HistoryLedger
from .models import FileRecord, HistoryEntry, StoreStats, UndoOutcome, UndoReport
from .store import MetadataStore

__all__ = [
    "DuplicateIndex",
    "EntryNotFoundError",
    "FileRecord",
    "HistoryEntry",
    "HistoryLedger",
    "LedgerWriteError",
    "MetadataStore",
    "StateError",
    "StoreError",
    "StoreStats",
    "UndoOutcome",
    "UndoReport",
]
