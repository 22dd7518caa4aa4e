"""Execute renames so that every completed rename is undoable."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from panoptes.state.errors import LedgerWriteError
from panoptes.state.history import HistoryLedger
from panoptes.state.models import HistoryEntry

from .models import RenameOperation
from .moves import claim_path, exclusive_move, release_claim

LOGGER = logging.getLogger(__name__)


class RenameExecutor:
    """Claim the target, record the rename, then perform it.

    The order is fixed:

    1. Create an empty placeholder at the destination with an exclusive
       create. If anything is already there the rename is abandoned with
       `CollisionUnresolved` and the source is untouched.
    2. Append a `HistoryEntry` to the ledger. If that fails the placeholder
       is removed and `LedgerWriteError` propagates; the source is untouched.
    3. Replace the placeholder with the source file.

    A crash between steps 2 and 3 leaves a ledger entry whose `new_path` is
    an empty placeholder or absent; undo reports such entries instead of
    moving anything.
    """

    def __init__(
        self,
        ledger: HistoryLedger,
        *,
        on_claim: Optional[Callable[[Path], None]] = None,
    ) -> None:
        """Initialize the executor.

        Args:
            ledger: History ledger receiving one entry per rename.
            on_claim: Called with the destination before it is created, so
                the watcher can ignore the resulting filesystem event.
        """
        self._ledger = ledger
        self._on_claim = on_claim

    @property
    def ledger(self) -> HistoryLedger:
        return self._ledger

    def apply(self, operation: RenameOperation) -> HistoryEntry:
        """Perform a rename and return its history entry.

        Raises:
            CollisionUnresolved: If the destination cannot be claimed.
            LedgerWriteError: If the history entry cannot be written.
            OSError: If the final rename fails.
        """
        destination = operation.destination
        if self._on_claim is not None:
            self._on_claim(destination)
        claim_path(destination)

        entry = HistoryEntry(
            original_path=operation.source,
            new_path=destination,
            suggestion=operation.suggestion,
            category=operation.category,
            tags=operation.tags,
            content_hash=operation.content_hash,
        )
        try:
            self._ledger.append(entry)
        except LedgerWriteError:
            release_claim(destination)
            raise

        exclusive_move(operation.source, destination, claimed=True)
        LOGGER.info("Renamed %s -> %s", operation.source.name, destination.name)
        return entry


__all__ = ["RenameExecutor"]
