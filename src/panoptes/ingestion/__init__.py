"""File intake: ignore rules, discovery, hashing and write-stability checks."""

from __future__ import annotations

from .detectors import HashComputer
from .discovery import DirectoryScanner, should_process
from .stability import StabilityDetector, WatchedFile

__all__ = [
    "DirectoryScanner",
    "HashComputer",
    "StabilityDetector",
    "WatchedFile",
    "should_process",
]
