"""Tests for the watch service and its event handler."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, List

import pytest
from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileMovedEvent

from panoptes.config.models import WatchSettings
from panoptes.watch import FileState, InFlightTracker, PipelineOutcome, WatchService
from panoptes.watch.service import _WatchEventHandler


class StubPipeline:
    """Pipeline double that records the paths it was given."""

    def __init__(self) -> None:
        self.tracker = InFlightTracker(echo_ttl=10)
        self.calls: List[tuple[Path, bool]] = []
        self._lock = threading.Lock()

    def process(self, path: Path, *, wait_for_stability: bool = True) -> PipelineOutcome:
        with self._lock:
            self.calls.append((path, wait_for_stability))
        return PipelineOutcome(path=path).finish(FileState.SKIPPED, "stub")


class BlockingPipeline(StubPipeline):
    """Pipeline double whose `process` waits until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def process(self, path: Path, *, wait_for_stability: bool = True) -> PipelineOutcome:
        self.entered.set()
        assert self.release.wait(timeout=5)
        return super().process(path, wait_for_stability=wait_for_stability)


class FakeObserver:
    """Observer double; events are injected through `WatchService.enqueue`."""

    def __init__(self) -> None:
        self.scheduled: List[tuple[Any, str, bool]] = []
        self.started = threading.Event()
        self.stopped = False

    def schedule(self, handler: Any, path: str, recursive: bool = False) -> None:
        self.scheduled.append((handler, path, recursive))

    def start(self) -> None:
        self.started.set()

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        return None


class RecordingService:
    def __init__(self) -> None:
        self.offered: List[Path] = []

    def enqueue(self, path: Path) -> bool:
        self.offered.append(path)
        return True


def _populate(root: Path) -> None:
    (root / "b.txt").write_text("b", encoding="utf-8")
    (root / "a.txt").write_text("a", encoding="utf-8")
    (root / ".hidden.txt").write_text("h", encoding="utf-8")
    (root / "movie.mp4.part").write_text("p", encoding="utf-8")
    nested = root / "sub"
    nested.mkdir()
    (nested / "c.txt").write_text("c", encoding="utf-8")
    state = root / "state"
    state.mkdir()
    (state / "history.jsonl").write_text("{}", encoding="utf-8")


def test_process_once_scans_top_level_in_order(tmp_path: Path) -> None:
    _populate(tmp_path)
    pipeline = StubPipeline()
    service = WatchService(pipeline, WatchSettings(), roots=[tmp_path], recursive=False)
    seen: List[PipelineOutcome] = []

    outcomes = service.process_once(seen.append)

    names = [outcome.path.name for outcome in outcomes]
    assert names == ["a.txt", "b.txt"]
    assert [outcome.path.name for outcome in seen] == names
    assert all(wait is False for _, wait in pipeline.calls)


def test_process_once_recursive_skips_excluded_state(tmp_path: Path) -> None:
    _populate(tmp_path)
    pipeline = StubPipeline()
    service = WatchService(
        pipeline,
        WatchSettings(),
        roots=[tmp_path],
        recursive=True,
        excluded=[tmp_path / "state"],
    )

    outcomes = service.process_once()

    assert sorted(outcome.path.name for outcome in outcomes) == ["a.txt", "b.txt", "c.txt"]


def test_process_once_with_nothing_to_do(tmp_path: Path) -> None:
    service = WatchService(StubPipeline(), WatchSettings(), roots=[tmp_path])

    assert service.process_once() == []


def test_enqueue_drops_echoes_excluded_and_in_flight_paths(tmp_path: Path) -> None:
    pipeline = StubPipeline()
    state = tmp_path / "state"
    state.mkdir()
    service = WatchService(pipeline, WatchSettings(), roots=[tmp_path], excluded=[state])
    renamed = tmp_path / "2024-03-15_trip.jpg"
    busy = tmp_path / "busy.jpg"

    pipeline.tracker.note_produced(renamed)
    pipeline.tracker.try_begin(busy)

    assert service.enqueue(tmp_path / "fresh.jpg") is True
    assert service.enqueue(renamed) is False
    assert service.enqueue(busy) is False
    assert service.enqueue(state / "panoptes.log") is False

    service.request_stop()
    assert service.stopping
    assert service.enqueue(tmp_path / "late.jpg") is False


def test_handler_ignores_directories_and_temporary_files(tmp_path: Path) -> None:
    service = RecordingService()
    handler = _WatchEventHandler(service, WatchSettings())  # type: ignore[arg-type]

    handler.on_created(DirCreatedEvent(str(tmp_path / "folder")))
    handler.on_created(FileCreatedEvent(str(tmp_path / "video.mp4.crdownload")))
    handler.on_created(FileCreatedEvent(str(tmp_path / "Thumbs.db")))
    handler.on_created(FileCreatedEvent(str(tmp_path / "photo.jpg")))

    assert service.offered == [tmp_path / "photo.jpg"]


def test_handler_treats_completed_download_rename_as_arrival(tmp_path: Path) -> None:
    service = RecordingService()
    handler = _WatchEventHandler(service, WatchSettings())  # type: ignore[arg-type]

    handler.on_moved(
        FileMovedEvent(str(tmp_path / "paper.pdf.crdownload"), str(tmp_path / "paper.pdf"))
    )
    handler.on_moved(FileMovedEvent(str(tmp_path / "old.pdf"), str(tmp_path / "new.pdf")))

    assert service.offered == [tmp_path / "paper.pdf"]


def test_watch_loop_dispatches_queued_files_until_stopped(tmp_path: Path) -> None:
    pipeline = StubPipeline()
    observer = FakeObserver()
    missing_root = tmp_path / "incoming"
    service = WatchService(
        pipeline,
        WatchSettings(),
        roots=[missing_root],
        max_workers=2,
        observer_factory=lambda: observer,
    )
    delivered = threading.Event()
    outcomes: List[PipelineOutcome] = []

    def _on_outcome(outcome: PipelineOutcome) -> None:
        outcomes.append(outcome)
        delivered.set()

    worker = threading.Thread(target=service.watch, args=(_on_outcome,))
    worker.start()
    try:
        assert observer.started.wait(timeout=5)
        with pytest.raises(RuntimeError):
            service.watch()
        assert service.enqueue(missing_root / "scan.pdf")
        assert delivered.wait(timeout=5)
    finally:
        service.request_stop()
        worker.join(timeout=5)

    assert not worker.is_alive()
    assert missing_root.is_dir()
    assert observer.stopped
    assert observer.scheduled[0][1] == str(missing_root.resolve())
    assert [outcome.path for outcome in outcomes] == [missing_root / "scan.pdf"]
    assert pipeline.calls == [(missing_root / "scan.pdf", True)]


def test_stop_lets_in_flight_files_finish(tmp_path: Path) -> None:
    pipeline = BlockingPipeline()
    observer = FakeObserver()
    service = WatchService(
        pipeline, WatchSettings(), roots=[tmp_path], observer_factory=lambda: observer
    )
    outcomes: List[PipelineOutcome] = []

    worker = threading.Thread(target=service.watch, args=(outcomes.append,))
    worker.start()
    try:
        assert observer.started.wait(timeout=5)
        assert service.enqueue(tmp_path / "report.pdf")
        assert pipeline.entered.wait(timeout=5)

        service.request_stop()
        worker.join(timeout=0.2)

        assert worker.is_alive()
        assert outcomes == []
    finally:
        pipeline.release.set()
        worker.join(timeout=5)

    assert not worker.is_alive()
    assert observer.stopped
    assert [outcome.path for outcome in outcomes] == [tmp_path / "report.pdf"]
