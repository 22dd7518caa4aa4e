"""Ignore rules and file discovery for one-shot analysis."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

from panoptes.config.models import WatchSettings


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


def should_process(path: Path, settings: WatchSettings) -> bool:
    """Return whether a newly seen file is worth analyzing.

    Hidden files, files ending in a temporary-download suffix and OS sidecar
    files such as `Thumbs.db` are ignored. Comparisons are case-insensitive.

    Args:
        path: Candidate file path.
        settings: Watch settings holding the ignore lists.

    Returns:
        bool: True when the file should enter the pipeline.
    """
    name = path.name
    if not name:
        return False
    if name.startswith(".") and not settings.process_hidden_files:
        return False
    lowered = name.lower()
    if lowered in settings.ignore_names:
        return False
    return not any(lowered.endswith(suffix) for suffix in settings.ignore_suffixes)


class DirectoryScanner:
    """Discover existing files under a directory subject to the ignore rules."""

    def __init__(
        self,
        settings: WatchSettings,
        *,
        recursive: bool,
        excluded: Iterable[Path] = (),
    ) -> None:
        self.settings = settings
        self.recursive = recursive
        self.excluded = [path.expanduser().resolve() for path in excluded]

    def scan(self, root: Path) -> Iterator[Path]:
        """Yield processable files under `root` in a stable order."""
        root = root.expanduser().resolve()
        if not root.exists():
            return

        for path in self._iter_paths(root):
            if not path.is_file() or path.is_symlink():
                continue
            try:
                relative = path.relative_to(root)
            except ValueError:
                relative = Path(path.name)
            if not self.settings.process_hidden_files and _is_hidden(relative):
                continue
            if any(path == excluded or excluded in path.parents for excluded in self.excluded):
                continue
            if should_process(path, self.settings):
                yield path

    def _iter_paths(self, root: Path) -> Iterable[Path]:
        if root.is_file():
            yield root
            return
        pattern = root.rglob("*") if self.recursive else root.iterdir()
        yield from sorted(pattern)


__all__ = ["DirectoryScanner", "should_process"]
