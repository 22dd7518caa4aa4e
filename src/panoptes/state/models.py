"""State data models for the rename history and the metadata store."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

UndoStatus = Literal["undone", "would_undo", "not_found", "original_occupied", "failed"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryEntry(BaseModel):
    """One rename recorded in the history ledger.

    Entries are frozen: a ledger rewrite replaces an entry with a copy whose
    `undone` flag is set, and nothing else about it ever changes.

    Attributes:
        id: Unique identifier of the entry.
        timestamp: When the rename was attempted.
        original_path: Path of the file before the rename.
        new_path: Path the file was renamed to.
        suggestion: Cleaned name that produced `new_path`.
        category: Category inferred for the file, if any.
        tags: Tags inferred for the file.
        content_hash: Content digest of the renamed file.
        undone: Whether the rename has been reverted.
        undone_at: When the rename was reverted.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=_utcnow)
    original_path: Path
    new_path: Path
    suggestion: str
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    content_hash: str
    undone: bool = False
    undone_at: Optional[datetime] = None


class UndoOutcome(BaseModel):
    """Result of attempting to revert a single history entry."""

    entry: HistoryEntry
    status: UndoStatus
    reason: Optional[str] = None

    @property
    def reverted(self) -> bool:
        """Return whether the file was moved back (or would be, in a dry run)."""
        return self.status in ("undone", "would_undo")


class UndoReport(BaseModel):
    """Aggregate result of an undo request."""

    dry_run: bool = False
    outcomes: List[UndoOutcome] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def reverted(self) -> List[UndoOutcome]:
        return [outcome for outcome in self.outcomes if outcome.reverted]

    @property
    def skipped(self) -> List[UndoOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.reverted]


class FileRecord(BaseModel):
    """A persisted analysis result, renamed or held back for review.

    Attributes:
        id: Identifier shared with the duplicate index.
        original_path: Path the file had when it was analyzed.
        new_path: Path after the rename, or None when the file kept its name.
        suggested_name: Name proposed by the analyzer.
        content_hash: Content digest of the file.
        category: Category inferred for the file.
        confidence: Analyzer confidence.
        analyzer: Name of the analyzer that produced the result.
        metadata: Analyzer-specific details.
        tags: Tags attached to the record.
        created_at: When the record was stored.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    original_path: Path
    new_path: Optional[Path] = None
    suggested_name: str
    content_hash: str
    category: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    analyzer: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class StoreStats(BaseModel):
    """Summary counters reported by `panoptes stats`."""

    total_files: int = 0
    renamed_files: int = 0
    pending_review: int = 0
    duplicate_hashes: int = 0
    tags: int = 0
    categories: Dict[str, int] = Field(default_factory=dict)


__all__ = [
    "HistoryEntry",
    "UndoOutcome",
    "UndoReport",
    "UndoStatus",
    "FileRecord",
    "StoreStats",
]
