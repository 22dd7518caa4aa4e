"""Archive analyzer based on the member listing."""

from __future__ import annotations

import logging
import tarfile
import zipfile
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import AnalysisResult, ExtensionAnalyzer
from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

CONFIDENCE = 0.65
MAX_LISTED = 50

_TYPE_MARKERS: List[tuple[str, tuple[str, ...]]] = [
    ("rust_project", ("cargo.toml",)),
    ("node_project", ("package.json",)),
    ("python_project", ("pyproject.toml", "setup.py")),
    ("git_repository", (".git/",)),
    ("website", ("index.html",)),
]


def detect_archive_type(members: List[str]) -> Optional[str]:
    """Classify an archive from marker files or its dominant extension."""
    lowered = [member.lower() for member in members]
    for label, markers in _TYPE_MARKERS:
        if any(marker in name for name in lowered for marker in markers):
            return label

    extensions = Counter(
        Path(name).suffix.lstrip(".")
        for name in lowered
        if Path(name).suffix and not name.endswith("/")
    )
    if not extensions:
        return None
    dominant, count = extensions.most_common(1)[0]
    if count * 2 < sum(extensions.values()):
        return None
    if dominant in ("jpg", "jpeg", "png", "gif", "webp", "heic"):
        return "photo_collection"
    if dominant in ("mp3", "flac", "wav", "ogg", "m4a"):
        return "music_collection"
    if dominant in ("pdf", "doc", "docx", "txt", "md"):
        return "document_collection"
    return None


class ArchiveAnalyzer(ExtensionAnalyzer):
    """Name archives after what they contain."""

    name = "archive"
    extensions = ("zip", "tar", "gz", "tgz", "bz2", "xz", "7z", "rar")
    default_priority = 40

    def analyze(self, path: Path) -> AnalysisResult:
        members = self._list_members(path)
        archive_type = detect_archive_type(members)
        metadata: Dict[str, Any] = {"files": len(members)}
        if archive_type:
            metadata["archive_type"] = archive_type

        name = ""
        if members:
            listing = "\n".join(members[:MAX_LISTED])
            prompt = self.render_prompt(
                self.config.prompts.archive, content=listing, filename=path.name
            )
            name = self.ask(self.config.inference.text_model, prompt)
        if not name:
            name = archive_type or f"archive_{len(members)}files"

        tags = [archive_type] if archive_type else []
        return self.build_result(
            path, name, CONFIDENCE, category="Archives", tags=tags, metadata=metadata
        )

    def _list_members(self, path: Path) -> List[str]:
        """Return member names; formats without a reader yield an empty list."""
        try:
            if zipfile.is_zipfile(path):
                with zipfile.ZipFile(path) as archive:
                    return archive.namelist()
            if tarfile.is_tarfile(path):
                with tarfile.open(path) as archive:
                    return archive.getnames()
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as exc:
            raise ExtractionError(f"Cannot list archive {path.name}: {exc}") from exc
        LOGGER.debug("No reader for %s; naming it without a listing", path.name)
        return []


__all__ = ["ArchiveAnalyzer", "detect_archive_type"]
