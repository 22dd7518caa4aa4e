"""Directory watching on top of the per-file pipeline."""

from __future__ import annotations

import logging
import os
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from panoptes.config.models import WatchSettings
from panoptes.ingestion.discovery import DirectoryScanner, should_process

from .models import PipelineOutcome
from .pipeline import FilePipeline, InFlightTracker

LOGGER = logging.getLogger(__name__)

QUEUE_POLL_SECONDS = 0.5

OutcomeCallback = Callable[[PipelineOutcome], None]


class WatchService:
    """Feed created files from one or more directories into a worker pool.

    The watchdog observer thread only enqueues paths. A single loop drains
    the queue and submits each path to a bounded thread pool where the
    pipeline does the blocking work (stability polling, model calls,
    renames), so a slow file never holds up the others.
    """

    def __init__(
        self,
        pipeline: FilePipeline,
        settings: WatchSettings,
        *,
        roots: Iterable[Path],
        recursive: Optional[bool] = None,
        max_workers: Optional[int] = None,
        excluded: Iterable[Path] = (),
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        """Initialize the watch service.

        Args:
            pipeline: Pipeline run for every accepted file.
            settings: Watch settings from the configuration.
            roots: Directories to monitor.
            recursive: Whether to include subdirectories; defaults to the settings.
            max_workers: Worker pool size; defaults to the settings.
            excluded: Paths never processed, such as the state directory.
            observer_factory: Factory for the watchdog observer.
        """
        self._pipeline = pipeline
        self._settings = settings
        self._roots = [root.expanduser().resolve() for root in roots]
        self._recursive = settings.recursive if recursive is None else recursive
        self._max_workers = max(1, max_workers or settings.max_workers)
        self._excluded = [path.expanduser().resolve() for path in excluded]
        self._observer_factory = observer_factory
        self._observer: Optional[BaseObserver] = None
        self._pool: Optional[ThreadPoolExecutor] = None
        self._queue: queue.Queue[Optional[Path]] = queue.Queue()
        self._stop_event = threading.Event()
        self._pending: set[Future[PipelineOutcome]] = set()
        self._pending_lock = threading.Lock()

    @property
    def roots(self) -> List[Path]:
        return list(self._roots)

    @property
    def tracker(self) -> InFlightTracker:
        return self._pipeline.tracker

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    # Public API -------------------------------------------------------

    def process_once(self, callback: Optional[OutcomeCallback] = None) -> List[PipelineOutcome]:
        """Process every file currently present under the roots.

        Files are assumed complete, so no stability wait is performed.

        Args:
            callback: Optional callable invoked as each file finishes.

        Returns:
            List[PipelineOutcome]: Outcomes in discovery order.
        """
        scanner = DirectoryScanner(
            self._settings, recursive=self._recursive, excluded=self._excluded
        )
        paths = [path for root in self._roots for path in scanner.scan(root)]
        if not paths:
            return []

        outcomes: List[PipelineOutcome] = []
        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="panoptes-scan"
        ) as pool:
            futures = [
                pool.submit(self._pipeline.process, path, wait_for_stability=False)
                for path in paths
            ]
            for future in futures:
                outcome = future.result()
                outcomes.append(outcome)
                if callback is not None:
                    callback(outcome)
        return outcomes

    def watch(self, callback: Optional[OutcomeCallback] = None) -> None:
        """Watch the roots until `request_stop` is called.

        Args:
            callback: Optional callable invoked with each finished outcome.
                It runs on a worker thread.

        Raises:
            RuntimeError: If the service is already running.
        """
        if self._observer is not None:
            raise RuntimeError("WatchService is already running.")

        missing = [root for root in self._roots if not root.is_dir()]
        for root in missing:
            LOGGER.warning("Watch directory %s does not exist; creating it", root)
            root.mkdir(parents=True, exist_ok=True)

        self._stop_event.clear()
        self._pool = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="panoptes-worker"
        )
        observer = self._observer_factory()
        for root in self._roots:
            handler = _WatchEventHandler(self, self._settings)
            observer.schedule(handler, str(root), recursive=self._recursive)
        self._observer = observer
        observer.start()
        LOGGER.info(
            "Watching %s with %d worker(s)",
            ", ".join(str(root) for root in self._roots),
            self._max_workers,
        )
        try:
            self._run_loop(callback)
        finally:
            self.stop()

    def enqueue(self, path: Path) -> bool:
        """Queue a file reported by the observer.

        Returns:
            bool: False when the path was dropped as an echo of Panoptes'
            own work, already in flight, or excluded.
        """
        if self._stop_event.is_set():
            return False
        path = Path(os.path.abspath(path))
        if any(path == excluded or excluded in path.parents for excluded in self._excluded):
            return False
        tracker = self._pipeline.tracker
        if tracker.is_recent_product(path):
            LOGGER.debug("Ignoring event for %s produced by a rename or undo", path)
            return False
        if tracker.in_flight(path):
            return False
        self._queue.put(path)
        return True

    def submit(
        self, path: Path, callback: Optional[OutcomeCallback] = None
    ) -> Future[PipelineOutcome]:
        """Hand a path to the worker pool.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if self._pool is None:
            raise RuntimeError("WatchService is not running.")
        future = self._pool.submit(self._pipeline.process, path)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(lambda done: self._on_done(done, callback))
        return future

    def request_stop(self) -> None:
        """Ask the loop to exit; safe to call from signal handlers."""
        self._stop_event.set()
        self._queue.put(None)

    def stop(self) -> None:
        """Stop the observer and wait for files already being processed.

        Files queued but not yet started are abandoned; a rename that has
        begun always completes.
        """
        self._stop_event.set()
        observer = self._observer
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)
            self._observer = None
        pool = self._pool
        if pool is not None:
            pool.shutdown(wait=True, cancel_futures=True)
            self._pool = None
        self._queue.put(None)

    # Internal helpers -------------------------------------------------

    def _run_loop(self, callback: Optional[OutcomeCallback]) -> None:
        while not self._stop_event.is_set():
            try:
                path = self._queue.get(timeout=QUEUE_POLL_SECONDS)
            except queue.Empty:
                continue
            if path is None:
                break
            try:
                self.submit(path, callback)
            except RuntimeError:
                LOGGER.debug("Dropping %s; worker pool is shutting down", path)
                break

    def _on_done(
        self, future: Future[PipelineOutcome], callback: Optional[OutcomeCallback]
    ) -> None:
        with self._pending_lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.error("Worker failed: %s", exc)
            return
        if callback is not None:
            try:
                callback(future.result())
            except Exception:
                LOGGER.exception("Outcome callback raised")


class _WatchEventHandler(FileSystemEventHandler):
    """Forward interesting filesystem events into the service queue."""

    def __init__(self, service: WatchService, settings: WatchSettings) -> None:
        self._service = service
        self._settings = settings

    def on_created(self, event: FileSystemEvent) -> None:
        """Queue newly created files."""
        if event.is_directory:
            return
        self._offer(Path(os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Queue files renamed from an ignored name to a processable one.

        Browsers and download tools write to `name.crdownload` or `name.part`
        and rename on completion; that rename is the file's real arrival.
        """
        if event.is_directory:
            return
        source = Path(os.fsdecode(event.src_path))
        destination = Path(os.fsdecode(event.dest_path))
        if should_process(source, self._settings):
            return
        self._offer(destination)

    def _offer(self, path: Path) -> None:
        if not should_process(path, self._settings):
            return
        self._service.enqueue(path)


__all__ = ["WatchService"]
