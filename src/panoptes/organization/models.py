"""Rename operation data models."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class RenameOperation(BaseModel):
    """Represents a file rename decided by the pipeline.

    Attributes:
        source: Original file path prior to the rename.
        destination: Target path after the rename.
        suggestion: Cleaned name that produced the destination.
        category: Category recorded alongside the rename.
        tags: Tags recorded alongside the rename.
        content_hash: Content digest of the file.
    """

    source: Path
    destination: Path
    suggestion: str
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    content_hash: str


__all__ = ["RenameOperation"]
