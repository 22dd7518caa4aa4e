"""Exclusive lock guarding writes to the history ledger.

Appends and whole-file rewrites take the same lock, both inside one process
(a `threading.Lock`) and across processes (an OS lock on a sidecar
`<ledger>.lock` file), so a `panoptes undo` run never rewrites the ledger
underneath a running watcher's append.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

LOGGER = logging.getLogger(__name__)


class LedgerLock:
    """Re-usable, blocking, cross-process exclusive lock."""

    def __init__(self, lock_path: Path) -> None:
        self.lock_path = lock_path
        self._thread_lock = threading.Lock()
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        """Block until both the in-process and the OS-level lock are held.

        Raises:
            OSError: If the lock file cannot be opened or locked.
        """
        self._thread_lock.acquire()
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_CREAT | os.O_RDWR, 0o644)
            try:
                _lock_fd(fd)
            except OSError:
                os.close(fd)
                raise
            self._fd = fd
        except BaseException:
            self._thread_lock.release()
            raise

    def release(self) -> None:
        """Release the lock; safe to call when it is not held."""
        fd, self._fd = self._fd, None
        if fd is None:
            return
        try:
            _unlock_fd(fd)
        except OSError as exc:
            LOGGER.debug("Unlocking %s failed: %s", self.lock_path, exc)
        finally:
            os.close(fd)
            self._thread_lock.release()

    def __enter__(self) -> "LedgerLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()


if sys.platform == "win32":  # pragma: no cover - exercised on Windows only
    import msvcrt

    def _lock_fd(fd: int) -> None:
        msvcrt.locking(fd, msvcrt.LK_LOCK, 1)

    def _unlock_fd(fd: int) -> None:
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _lock_fd(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_EX)

    def _unlock_fd(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)


__all__ = ["LedgerLock"]
