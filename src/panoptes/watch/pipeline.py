"""Per-file pipeline: stabilize, analyze, decide, rename, record."""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Set
from uuid import uuid4

from panoptes.analyzers.base import AnalysisResult, Analyzer, infer_category
from panoptes.analyzers.errors import ExtractionError
from panoptes.analyzers.registry import AnalyzerRegistry
from panoptes.config.models import PanoptesConfig
from panoptes.ingestion.detectors import HashComputer
from panoptes.ingestion.discovery import should_process
from panoptes.ingestion.stability import StabilityDetector
from panoptes.organization.executor import RenameExecutor
from panoptes.organization.models import RenameOperation
from panoptes.organization.naming import (
    CollisionUnresolved,
    NameResolver,
    sanitize_filename,
    split_extension,
)
from panoptes.state.duplicates import DuplicateIndex
from panoptes.state.errors import LedgerWriteError, StoreError
from panoptes.state.history import HistoryLedger
from panoptes.state.models import FileRecord
from panoptes.state.store import MetadataStore

from .models import FileState, PipelineOutcome

LOGGER = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.3
DUPLICATE_TAG = "duplicate"


class InFlightTracker:
    """Shared bookkeeping of which paths are being processed.

    Also remembers paths Panoptes itself just created (rename targets and
    undo destinations) for `echo_ttl` seconds, so that the filesystem events
    they cause are not fed back into the pipeline. The lock is only held for
    set and dict updates.
    """

    def __init__(
        self,
        *,
        echo_ttl: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._active: Set[Path] = set()
        self._produced: Dict[Path, float] = {}
        self._echo_ttl = echo_ttl
        self._clock = clock

    def try_begin(self, path: Path) -> bool:
        """Mark `path` in flight; False if it already is."""
        with self._lock:
            if path in self._active:
                return False
            self._active.add(path)
            return True

    def finish(self, path: Path) -> None:
        with self._lock:
            self._active.discard(path)

    def in_flight(self, path: Path) -> bool:
        with self._lock:
            return path in self._active

    def note_produced(self, path: Path) -> None:
        with self._lock:
            self._produced[path] = self._clock() + self._echo_ttl

    def is_recent_product(self, path: Path) -> bool:
        now = self._clock()
        with self._lock:
            expired = [key for key, deadline in self._produced.items() if deadline <= now]
            for key in expired:
                del self._produced[key]
            return path in self._produced

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)


def _absolute(path: Path) -> Path:
    return Path(os.path.abspath(path))


class FilePipeline:
    """Run one file through the Detected to Renamed/Skipped/Failed lifecycle.

    Instances are safe to call from many worker threads at once. Workers only
    share the in-flight tracker, the history ledger, the duplicate index and
    the metadata store.
    """

    def __init__(
        self,
        config: PanoptesConfig,
        *,
        registry: AnalyzerRegistry,
        resolver: NameResolver,
        executor: RenameExecutor,
        stability: StabilityDetector,
        store: Optional[MetadataStore] = None,
        duplicates: Optional[DuplicateIndex] = None,
        tracker: Optional[InFlightTracker] = None,
        hasher: Optional[HashComputer] = None,
        dry_run: bool = False,
        skip_restored: bool = False,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Loaded configuration.
            registry: Analyzer registry used for dispatch.
            resolver: Resolver turning suggestions into target paths.
            executor: Executor performing logged renames.
            stability: Detector used to wait for writes to finish.
            store: Metadata store receiving every decided result.
            duplicates: Content-hash index used to annotate duplicates.
            tracker: In-flight tracker shared with the watch service.
            hasher: Hash computer used for fallback results.
            dry_run: Decide without renaming, logging or persisting.
            skip_restored: Leave alone files that undo moved back.
        """
        self._config = config
        self._registry = registry
        self._resolver = resolver
        self._executor = executor
        self._stability = stability
        self._store = store
        self._duplicates = duplicates
        if tracker is None:
            tracker = InFlightTracker(echo_ttl=config.watch.echo_suppression_seconds)
        self._tracker = tracker
        self._hasher = hasher if hasher is not None else HashComputer()
        self._dry_run = dry_run
        self._skip_restored = skip_restored

    @property
    def tracker(self) -> InFlightTracker:
        return self._tracker

    @property
    def ledger(self) -> HistoryLedger:
        return self._executor.ledger

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def process(self, path: Path, *, wait_for_stability: bool = True) -> PipelineOutcome:
        """Process a single file end to end.

        No exception escapes: every failure becomes a `FAILED` outcome so that
        one file never disturbs another.

        Args:
            path: File reported by the watcher or the scanner.
            wait_for_stability: Whether to wait for the file size to settle.

        Returns:
            PipelineOutcome: Final state of the file.
        """
        path = _absolute(path)
        outcome = PipelineOutcome(path=path, dry_run=self._dry_run)
        if not should_process(path, self._config.watch):
            return outcome.finish(FileState.SKIPPED, "ignored")
        if not self._tracker.try_begin(path):
            LOGGER.debug("%s is already being processed", path)
            return outcome.finish(FileState.SKIPPED, "already in progress")

        try:
            self._run(path, outcome, wait_for_stability)
        except Exception as exc:
            LOGGER.exception("Unexpected failure while processing %s", path)
            outcome.finish(FileState.FAILED, f"unexpected error: {exc}")
        finally:
            self._tracker.finish(path)

        self._log_outcome(outcome)
        return outcome

    # Stages -----------------------------------------------------------

    def _run(self, path: Path, outcome: PipelineOutcome, wait_for_stability: bool) -> None:
        outcome.state = FileState.STABILIZING
        if wait_for_stability:
            max_wait = self._config.watch.stability_timeout_seconds
            if not self._stability.wait_for_stable(path, max_wait):
                outcome.finish(FileState.SKIPPED, "vanished before it was stable")
                return
        elif not path.is_file():
            outcome.finish(FileState.SKIPPED, "not found")
            return

        outcome.state = FileState.DISPATCHED
        analyzer = self._registry.find(path)
        if analyzer is None:
            outcome.finish(FileState.SKIPPED, "no analyzer for this file type")
            return

        try:
            result = self._analyze(analyzer, path)
        except OSError as exc:
            outcome.finish(FileState.FAILED, f"cannot read file: {exc}")
            return
        if not self._config.rules.auto_categorize:
            result = result.model_copy(update={"category": None})

        if self._skip_restored and self.ledger.was_restored(
            path, result.content_hash, within=self._config.watch.restore_grace_seconds
        ):
            outcome.result = result
            outcome.finish(FileState.SKIPPED, "restored by undo")
            return

        outcome.state = FileState.DECIDED
        record_id = uuid4().hex
        owner = self._check_duplicate(result.content_hash, record_id)
        claimed = owner is None and self._duplicates is not None and not self._dry_run
        if owner is not None:
            outcome.duplicate_of = owner
            result = result.model_copy(
                update={
                    "tags": [*result.tags, DUPLICATE_TAG],
                    "metadata": {**result.metadata, "duplicate_of": owner},
                }
            )
        outcome.result = result

        threshold = self._config.rules.rename_threshold
        if result.confidence >= threshold:
            if not self._rename(path, result, outcome):
                if claimed:
                    self._release(result.content_hash, record_id)
                return
        else:
            outcome.finish(
                FileState.SKIPPED,
                f"confidence {result.confidence:.2f} below threshold {threshold:.2f}",
            )

        if self._dry_run:
            return
        if not self._persist(path, result, record_id, outcome) and claimed:
            self._release(result.content_hash, record_id)

    def _analyze(self, analyzer: Analyzer, path: Path) -> AnalysisResult:
        try:
            return analyzer.analyze(path)
        except ExtractionError as exc:
            name = getattr(analyzer, "name", type(analyzer).__name__)
            LOGGER.warning("%s analyzer could not read %s: %s", name, path.name, exc)
            stem, extension = split_extension(path)
            fallback = sanitize_filename(stem, prefix_window=self._config.rules.prefix_window)
            return AnalysisResult(
                suggested_name=fallback or "file",
                confidence=FALLBACK_CONFIDENCE,
                category=infer_category(stem, extension),
                content_hash=self._hasher.compute(path),
                metadata={"extraction_error": str(exc)},
                analyzer=name,
            )

    def _check_duplicate(self, content_hash: str, record_id: str) -> Optional[str]:
        if self._duplicates is None or not self._config.rules.duplicate_detection:
            return None
        try:
            if self._dry_run:
                return self._duplicates.find_by_hash(content_hash)
            return self._duplicates.claim(content_hash, record_id)
        except StoreError as exc:
            LOGGER.warning("Duplicate lookup failed: %s", exc)
            return None

    def _rename(self, path: Path, result: AnalysisResult, outcome: PipelineOutcome) -> bool:
        """Resolve and perform the rename; False when the outcome is already final."""
        try:
            target = self._resolver.resolve(path, result.suggested_name)
        except CollisionUnresolved as exc:
            outcome.finish(FileState.FAILED, str(exc))
            return False
        if target is None:
            outcome.finish(FileState.SKIPPED, "name unchanged")
            return True

        outcome.new_path = target
        if self._dry_run:
            outcome.finish(FileState.DECIDED, "dry run")
            return True

        operation = RenameOperation(
            source=path,
            destination=target,
            suggestion=target.name,
            category=result.category,
            tags=result.tags,
            content_hash=result.content_hash,
        )
        try:
            entry = self._executor.apply(operation)
        except CollisionUnresolved as exc:
            outcome.new_path = None
            outcome.finish(FileState.FAILED, str(exc))
            return False
        except LedgerWriteError as exc:
            outcome.new_path = None
            outcome.finish(FileState.FAILED, f"history not writable, rename aborted: {exc}")
            return False
        except OSError as exc:
            outcome.new_path = None
            outcome.finish(FileState.FAILED, f"rename failed: {exc}")
            return False

        outcome.history_id = entry.id
        outcome.finish(FileState.RENAMED)
        return True

    def _persist(
        self,
        path: Path,
        result: AnalysisResult,
        record_id: str,
        outcome: PipelineOutcome,
    ) -> bool:
        if self._store is None:
            return True
        record = FileRecord(
            id=record_id,
            original_path=path,
            new_path=outcome.new_path if outcome.state is FileState.RENAMED else None,
            suggested_name=result.suggested_name,
            content_hash=result.content_hash,
            category=result.category,
            confidence=result.confidence,
            analyzer=result.analyzer,
            metadata=result.metadata,
            tags=result.tags,
        )
        try:
            self._store.insert_record(record)
        except StoreError as exc:
            LOGGER.warning("Could not record %s in the metadata store: %s", path.name, exc)
            return False
        outcome.record_id = record_id
        outcome.persisted = True
        return True

    def _release(self, content_hash: str, record_id: str) -> None:
        if self._duplicates is None:
            return
        try:
            self._duplicates.release(content_hash, record_id)
        except StoreError as exc:
            LOGGER.warning("Could not release duplicate index entry: %s", exc)

    def _log_outcome(self, outcome: PipelineOutcome) -> None:
        name = outcome.path.name
        if outcome.state is FileState.RENAMED and outcome.new_path is not None:
            LOGGER.info("%s -> %s", name, outcome.new_path.name)
        elif outcome.state is FileState.FAILED:
            LOGGER.error("%s failed: %s", name, outcome.reason)
        elif outcome.state is FileState.SKIPPED:
            LOGGER.info("%s skipped: %s", name, outcome.reason)
        else:
            LOGGER.info("%s -> %s (%s)", name, outcome.new_path, outcome.reason)


__all__ = ["FALLBACK_CONFIDENCE", "FilePipeline", "InFlightTracker"]
