"""Per-file pipeline states and outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from panoptes.analyzers.base import AnalysisResult


class FileState(str, Enum):
    """Lifecycle of a file inside the pipeline."""

    DETECTED = "detected"
    STABILIZING = "stabilizing"
    DISPATCHED = "dispatched"
    DECIDED = "decided"
    RENAMED = "renamed"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (FileState.RENAMED, FileState.SKIPPED, FileState.FAILED)


@dataclass(slots=True)
class PipelineOutcome:
    """What happened to one file.

    Attributes:
        path: Path the file had when it entered the pipeline.
        state: Last state reached. Dry runs end in `DECIDED`.
        reason: Why the file was skipped or failed, if it was.
        result: Analysis result, once an analyzer has run.
        new_path: Rename target (planned target for dry runs).
        record_id: Identifier of the stored record.
        history_id: Identifier of the history entry for a rename.
        duplicate_of: Record id of earlier identical content.
        persisted: Whether the record reached the metadata store.
        dry_run: Whether the run was a dry run.
    """

    path: Path
    state: FileState = FileState.DETECTED
    reason: Optional[str] = None
    result: Optional[AnalysisResult] = None
    new_path: Optional[Path] = None
    record_id: Optional[str] = None
    history_id: Optional[str] = None
    duplicate_of: Optional[str] = None
    persisted: bool = False
    dry_run: bool = False

    def finish(self, state: FileState, reason: Optional[str] = None) -> "PipelineOutcome":
        self.state = state
        self.reason = reason
        return self

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-ready description for CLI output."""
        payload: dict[str, Any] = {
            "path": self.path.as_posix(),
            "state": self.state.value,
            "reason": self.reason,
            "new_path": self.new_path.as_posix() if self.new_path else None,
            "record_id": self.record_id,
            "history_id": self.history_id,
            "duplicate_of": self.duplicate_of,
            "persisted": self.persisted,
            "dry_run": self.dry_run,
        }
        if self.result is not None:
            payload["analysis"] = self.result.model_dump(mode="json", exclude={"metadata"})
        return payload


__all__ = ["FileState", "PipelineOutcome"]
