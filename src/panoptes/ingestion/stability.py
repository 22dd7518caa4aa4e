"""Write-stability detection for newly created files."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5


@dataclass(slots=True)
class WatchedFile:
    """A file under observation while its size settles.

    Attributes:
        path: File being observed.
        last_known_size: Size reported by the most recent sample.
        first_seen_at: Monotonic clock reading of the first sample.
    """

    path: Path
    last_known_size: int
    first_seen_at: float


class StabilityDetector:
    """Decide whether a file has finished being written."""

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the detector.

        Args:
            poll_interval: Seconds between two size samples.
            sleep: Sleep function, replaceable in tests.
            clock: Monotonic clock, replaceable in tests.
        """
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def wait_for_stable(self, path: Path, max_wait: float) -> bool:
        """Poll `path` until two consecutive samples report the same size.

        Args:
            path: File to observe.
            max_wait: Seconds after which the file is accepted even if it is
                still growing.

        Returns:
            bool: True when the file is stable or `max_wait` elapsed, False
            when the file disappeared.
        """
        watched = self._observe(path)
        if watched is None:
            LOGGER.debug("%s vanished before the first size sample", path)
            return False

        while True:
            self._sleep(self.poll_interval)
            elapsed = self._clock() - watched.first_seen_at
            size = _current_size(path)
            if size is None:
                LOGGER.debug("%s vanished while stabilizing", path)
                return False
            if size == watched.last_known_size:
                LOGGER.debug("%s stable at %d bytes after %.1fs", path, size, elapsed)
                return True
            if elapsed >= max_wait:
                LOGGER.warning(
                    "%s still growing after %.1fs; processing it anyway", path.name, elapsed
                )
                return True
            watched.last_known_size = size

    def _observe(self, path: Path) -> Optional[WatchedFile]:
        size = _current_size(path)
        if size is None:
            return None
        return WatchedFile(path=path, last_known_size=size, first_seen_at=self._clock())


def _current_size(path: Path) -> Optional[int]:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return None
    except OSError as exc:
        LOGGER.debug("stat(%s) failed: %s", path, exc)
        return None


__all__ = ["StabilityDetector", "WatchedFile"]
