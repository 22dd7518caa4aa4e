"""Append-only JSONL ledger of renames, with undo."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from pydantic import ValidationError

from panoptes.ingestion.detectors import HashComputer
from panoptes.organization.moves import exclusive_move
from panoptes.organization.naming import CollisionUnresolved

from .errors import EntryNotFoundError, LedgerWriteError, StateError
from .locking import LedgerLock
from .models import HistoryEntry, UndoOutcome, UndoReport, UndoStatus

LOGGER = logging.getLogger(__name__)


class HistoryLedger:
    """Durable record of every rename Panoptes performs.

    Each entry is one JSON object per line. Appends and whole-file rewrites
    share one exclusive lock; reads take no lock because appends only ever
    add complete lines and rewrites swap the file atomically.
    """

    def __init__(self, path: Path, *, hasher: Optional[HashComputer] = None) -> None:
        """Initialize the ledger.

        Args:
            path: Location of the JSONL history file.
            hasher: Hash computer used to recognise files already moved back.
        """
        self._path = path.expanduser()
        self._hasher = hasher if hasher is not None else HashComputer()
        self._lock = LedgerLock(self._path.with_name(self._path.name + ".lock"))

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: HistoryEntry) -> None:
        """Durably append an entry; the line is flushed and fsynced before returning.

        Raises:
            LedgerWriteError: If the entry cannot be written.
        """
        line = entry.model_dump_json() + "\n"
        try:
            with self._lock:
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
                    handle.flush()
                    os.fsync(handle.fileno())
        except OSError as exc:
            raise LedgerWriteError(
                f"Failed to append history entry to {self._path}: {exc}"
            ) from exc

    def read_all(self) -> List[HistoryEntry]:
        """Return every readable entry in file order; malformed lines are skipped."""
        if not self._path.exists():
            return []

        entries: List[HistoryEntry] = []
        with self._path.open("r", encoding="utf-8") as handle:
            for number, raw in enumerate(handle, start=1):
                line = raw.strip()
                if not line:
                    continue
                try:
                    entries.append(HistoryEntry.model_validate_json(line))
                except ValidationError as exc:
                    LOGGER.warning(
                        "Skipping malformed history line %d in %s: %s",
                        number,
                        self._path,
                        exc.errors()[0]["msg"] if exc.errors() else exc,
                    )
        return entries

    def recent(self, limit: int) -> List[HistoryEntry]:
        """Return up to `limit` entries, newest first."""
        entries = self.read_all()
        entries.reverse()
        return entries[:limit]

    def undoable(self) -> List[HistoryEntry]:
        """Return entries not yet undone, newest first."""
        return [entry for entry in reversed(self.read_all()) if not entry.undone]

    def was_restored(
        self,
        path: Path,
        content_hash: str,
        *,
        within: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Return whether undo recently moved this exact content back to `path`.

        Args:
            path: Path the file now has.
            content_hash: Content digest of the file.
            within: Only count undos at most this many seconds old; None
                counts every undo.
            now: Reference time for `within`; defaults to the current time.
        """
        current = now or _utcnow()
        for entry in reversed(self.read_all()):
            if not entry.undone or entry.original_path != path:
                continue
            if entry.content_hash != content_hash:
                continue
            if within is None:
                return True
            if entry.undone_at is not None:
                if (current - entry.undone_at).total_seconds() <= within:
                    return True
        return False

    def mark_undone(self, entry_ids: Iterable[str]) -> List[HistoryEntry]:
        """Flip `undone` on the given entries by rewriting the whole ledger.

        The ledger is re-read under the write lock, so entries appended while
        the caller was working are preserved. The new contents are written to
        a temporary file in the same directory and swapped in with
        `os.replace`.

        Args:
            entry_ids: Identifiers of entries to mark.

        Returns:
            List[HistoryEntry]: The entries that changed state.

        Raises:
            EntryNotFoundError: If an identifier is not in the ledger.
            LedgerWriteError: If the rewrite fails; the old file is kept.
        """
        wanted = set(entry_ids)
        if not wanted:
            return []

        with self._lock:
            entries = self.read_all()
            missing = wanted - {entry.id for entry in entries}
            if missing:
                raise EntryNotFoundError(f"Unknown history entries: {', '.join(sorted(missing))}")

            changed: List[HistoryEntry] = []
            rewritten: List[HistoryEntry] = []
            for entry in entries:
                if entry.id in wanted and not entry.undone:
                    entry = entry.model_copy(update={"undone": True, "undone_at": _utcnow()})
                    changed.append(entry)
                rewritten.append(entry)
            if changed:
                self._rewrite(rewritten)
        return changed

    def undo(
        self,
        count: int = 1,
        *,
        dry_run: bool = False,
        on_restore: Optional[Callable[[Path], None]] = None,
    ) -> UndoReport:
        """Revert the most recent renames.

        Entries are visited newest first, skipping those already undone. An
        entry is reverted only when its `new_path` exists and its
        `original_path` is free; otherwise it is reported with a reason and
        left undoable for a later attempt.

        Each entry is marked undone right after its file is moved back. If
        that ledger write fails the move is kept, the failure is added to
        `UndoReport.warnings`, and a later undo recognises the file at its
        original path and marks the entry then.

        Args:
            count: Number of undoable entries to visit; 0 or less visits all.
            dry_run: Report what would happen without touching files or the ledger.
            on_restore: Called with the original path just before a file is
                moved back, so watchers can ignore the resulting event.

        Returns:
            UndoReport: Per-entry outcomes in the order visited.
        """
        candidates = self.undoable()
        if count > 0:
            candidates = candidates[:count]

        report = UndoReport(dry_run=dry_run)
        for entry in candidates:
            outcome = self._undo_entry(entry, dry_run=dry_run, on_restore=on_restore)
            report.outcomes.append(outcome)
            if outcome.status != "undone":
                continue
            try:
                self.mark_undone([entry.id])
            except StateError as exc:
                LOGGER.error("Restored %s but could not mark it undone: %s", entry.id, exc)
                report.warnings.append(
                    f"{entry.original_path} was restored but the ledger still lists "
                    f"entry {entry.id} as undoable: {exc}"
                )
        return report

    def clear(self) -> None:
        """Erase the entire ledger. Irreversible."""
        with self._lock:
            self._path.unlink(missing_ok=True)
        LOGGER.info("Cleared history ledger %s", self._path)

    # Internal helpers -------------------------------------------------

    def _undo_entry(
        self,
        entry: HistoryEntry,
        *,
        dry_run: bool,
        on_restore: Optional[Callable[[Path], None]],
    ) -> UndoOutcome:
        if not entry.new_path.exists():
            if self._already_restored(entry):
                status: UndoStatus = "would_undo" if dry_run else "undone"
                return UndoOutcome(entry=entry, status=status, reason="already restored")
            return UndoOutcome(entry=entry, status="not_found", reason="file not found")
        if entry.original_path.exists():
            return UndoOutcome(
                entry=entry,
                status="original_occupied",
                reason="original path already exists",
            )
        if dry_run:
            return UndoOutcome(entry=entry, status="would_undo")

        if on_restore is not None:
            on_restore(entry.original_path)
        try:
            exclusive_move(entry.new_path, entry.original_path)
        except CollisionUnresolved:
            return UndoOutcome(
                entry=entry,
                status="original_occupied",
                reason="original path already exists",
            )
        except OSError as exc:
            LOGGER.error("Undo of %s failed: %s", entry.new_path, exc)
            return UndoOutcome(entry=entry, status="failed", reason=str(exc))

        LOGGER.info("Restored %s -> %s", entry.new_path.name, entry.original_path.name)
        return UndoOutcome(entry=entry, status="undone")

    def _already_restored(self, entry: HistoryEntry) -> bool:
        try:
            return (
                entry.original_path.is_file()
                and self._hasher.compute(entry.original_path) == entry.content_hash
            )
        except OSError:
            return False

    def _rewrite(self, entries: List[HistoryEntry]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                for entry in entries:
                    handle.write(entry.model_dump_json() + "\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, self._path)
        except OSError as exc:
            Path(temp_name).unlink(missing_ok=True)
            raise LedgerWriteError(f"Failed to rewrite history ledger {self._path}: {exc}") from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dump_entry(entry: HistoryEntry) -> dict:
    """Return a JSON-ready mapping for CLI output."""
    return json.loads(entry.model_dump_json())


__all__ = ["HistoryLedger", "dump_entry"]
