"""Rename primitives that never overwrite an existing file."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .naming import CollisionUnresolved

LOGGER = logging.getLogger(__name__)


def claim_path(path: Path) -> None:
    """Atomically create an empty placeholder at `path`.

    Raises:
        CollisionUnresolved: If anything already exists at `path`.
    """
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError as exc:
        raise CollisionUnresolved(f"Target already exists: {path}") from exc
    os.close(fd)


def release_claim(path: Path) -> None:
    """Remove a placeholder created by `claim_path`, if it is still there."""
    try:
        if path.stat().st_size == 0:
            path.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        LOGGER.warning("Could not remove placeholder %s: %s", path, exc)


def exclusive_move(source: Path, destination: Path, *, claimed: bool = False) -> None:
    """Rename `source` to `destination` only if `destination` is free.

    The destination is claimed first with an exclusive create, then the
    source replaces the placeholder. A concurrent writer racing for the same
    name therefore loses at the claim step and the source stays in place.

    Args:
        source: File to move.
        destination: Target path in the same filesystem.
        claimed: Whether the caller already holds a placeholder at `destination`.

    Raises:
        CollisionUnresolved: If `destination` is occupied.
        OSError: If the rename itself fails; the placeholder is removed.
    """
    if not claimed:
        claim_path(destination)
    try:
        os.replace(source, destination)
    except OSError:
        release_claim(destination)
        raise


__all__ = ["claim_path", "release_claim", "exclusive_move"]
