"""Watch mode: the per-file pipeline and the directory watcher feeding it."""

from __future__ import annotations

from .models import FileState, PipelineOutcome
from .pipeline import FALLBACK_CONFIDENCE, FilePipeline, InFlightTracker
from .service import WatchService

__all__ = [
    "FALLBACK_CONFIDENCE",
    "FilePipeline",
    "FileState",
    "InFlightTracker",
    "PipelineOutcome",
    "WatchService",
]
