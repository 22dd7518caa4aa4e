"""Audio analyzer reading tags through mutagen."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError

from .base import AnalysisResult, ExtensionAnalyzer

LOGGER = logging.getLogger(__name__)

TITLE_CONFIDENCE = 0.95
GUESS_CONFIDENCE = 0.60


def _first(tags: Any, key: str) -> Optional[str]:
    values = tags.get(key) if tags is not None else None
    if not values:
        return None
    value = str(values[0]).strip()
    return value or None


class AudioAnalyzer(ExtensionAnalyzer):
    """Name tracks after their artist and title tags."""

    name = "audio"
    extensions = ("mp3", "wav", "flac", "m4a", "ogg", "aac", "wma", "opus")
    default_priority = 80

    def analyze(self, path: Path) -> AnalysisResult:
        metadata = self._read_tags(path) if self.config.analyzers.audio.use_metadata else {}
        title = metadata.get("title")
        artist = metadata.get("artist")
        album = metadata.get("album")

        if artist and title:
            candidate = f"{artist} - {title}"
        elif title:
            candidate = title
        elif artist and album:
            candidate = f"{artist} - {album}"
        else:
            candidate = ""
        name = self.clean(candidate)

        if not name and metadata:
            details = "\n".join(f"{key}: {value}" for key, value in metadata.items())
            prompt = self.render_prompt(
                self.config.prompts.audio, filename=path.stem, details=details
            )
            name = self.ask(self.config.inference.text_model, prompt)
        if not name:
            name = self.clean(path.stem) or "audio"

        tags: List[str] = []
        if metadata.get("genre"):
            tags.append(metadata["genre"].lower())
        if artist:
            tags.append(self.clean(artist))

        confidence = TITLE_CONFIDENCE if title else GUESS_CONFIDENCE
        return self.build_result(path, name, confidence, tags=tags, metadata=metadata)

    def _read_tags(self, path: Path) -> Dict[str, Any]:
        """Return tag values and duration, or an empty mapping for unreadable files."""
        try:
            audio = MutagenFile(path, easy=True)
        except (MutagenError, OSError) as exc:
            LOGGER.debug("mutagen could not read %s: %s", path.name, exc)
            return {}
        if audio is None:
            return {}

        metadata: Dict[str, Any] = {}
        for key in ("title", "artist", "album", "date", "genre"):
            value = _first(audio.tags, key)
            if value:
                metadata[key] = value
        length = getattr(audio.info, "length", None)
        if length:
            metadata["duration_seconds"] = round(float(length), 1)
        return metadata


__all__ = ["AudioAnalyzer"]
