"""Filename sanitization and collision-free target resolution."""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Tuple

from panoptes.config.models import NamingRules

LOGGER = logging.getLogger(__name__)

COMPOUND_EXTENSIONS = (".tar.gz", ".tar.bz2", ".tar.xz", ".tar.zst")
COLLISION_SUFFIX_FORMAT = "%H%M%S"
DEFAULT_PREFIX_WINDOW = 30
MIN_STEM_LENGTH = 4

_HYPHEN_RUN = re.compile(r"[-_]*-[-_]*")
_UNDERSCORE_RUN = re.compile(r"_{2,}")
_SEPARATORS = "_-"


class CollisionUnresolved(Exception):
    """Raised when no free target name can be claimed for a rename."""


def sanitize_filename(raw: str, *, prefix_window: int = DEFAULT_PREFIX_WINDOW) -> str:
    """Reduce free text, typically a model answer, to a filename stem.

    A leading `Label:` is dropped only when the colon falls within the first
    `prefix_window` characters, so a colon deep inside real content does not
    truncate it. The result contains only lowercase alphanumerics, `_` and
    `-`, with no repeated or leading/trailing separators. Applying the
    function to its own output returns the same string.

    Args:
        raw: Arbitrary suggestion text.
        prefix_window: Maximum colon position for prefix stripping.

    Returns:
        str: Sanitized stem, possibly empty.
    """
    text = raw.strip()
    colon = text.find(":")
    if 0 <= colon < prefix_window:
        text = text[colon + 1 :].strip()
    text = text.strip('"').strip("'").lower()

    kept = []
    for char in text:
        if char.isalnum() or char in _SEPARATORS:
            kept.append(char)
        elif char.isspace():
            kept.append("_")
    cleaned = _HYPHEN_RUN.sub("-", "".join(kept))
    cleaned = _UNDERSCORE_RUN.sub("_", cleaned)
    return cleaned.strip(_SEPARATORS)


def split_extension(path: Path) -> Tuple[str, str]:
    """Split a filename into stem and extension, keeping `.tar.*` together."""
    name = path.name
    lowered = name.lower()
    for compound in COMPOUND_EXTENSIONS:
        if lowered.endswith(compound) and len(name) > len(compound):
            return name[: -len(compound)], name[-len(compound) :]
    return path.stem, path.suffix


class NameResolver:
    """Turn analyzer suggestions into final, unoccupied target paths."""

    def __init__(
        self,
        rules: NamingRules,
        *,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the resolver.

        Args:
            rules: Naming rules from the configuration.
            now: Clock used for date prefixes and collision suffixes.
        """
        self._rules = rules
        self._now = now

    @property
    def rules(self) -> NamingRules:
        return self._rules

    def compose_stem(self, suggestion: str) -> str:
        """Apply sanitization, date prefix and the length bound to a suggestion.

        The length bound applies to the suggestion first, so a date prefix
        never crowds it out. When the prefix leaves fewer than
        `MIN_STEM_LENGTH` characters the prefix is omitted instead.

        Args:
            suggestion: Raw or cleaned suggested name.

        Returns:
            str: The stem to use, or an empty string when nothing usable remains.
        """
        if self._rules.sanitize:
            stem = sanitize_filename(suggestion, prefix_window=self._rules.prefix_window)
        else:
            stem = suggestion.strip().replace(os.sep, "_")
        if not stem:
            return ""

        if self._rules.date_prefix:
            prefix = f"{self._now().strftime(self._rules.date_format)}_"
            room = self._rules.max_length - len(prefix)
            if not stem.startswith(prefix) and room >= MIN_STEM_LENGTH:
                stem = prefix + stem[:room].rstrip(_SEPARATORS)

        return stem[: self._rules.max_length].rstrip(_SEPARATORS)

    def resolve(self, source: Path, suggestion: str) -> Optional[Path]:
        """Return the path `source` should be renamed to.

        Args:
            source: File being renamed.
            suggestion: Suggested name for the file.

        Returns:
            Optional[Path]: Target path, or None when the suggestion is empty or
            the file already carries the resolved name.

        Raises:
            CollisionUnresolved: If both the plain and the time-suffixed names
                are taken.
        """
        stem = self.compose_stem(suggestion)
        if not stem:
            LOGGER.debug("Suggestion %r for %s sanitized to nothing", suggestion, source)
            return None

        _, extension = split_extension(source)
        candidate = source.with_name(f"{stem}{extension}")
        if candidate == source or _same_file(candidate, source):
            return None
        if not candidate.exists():
            return candidate

        suffix = self._now().strftime(COLLISION_SUFFIX_FORMAT)
        retry = source.with_name(f"{stem}_{suffix}{extension}")
        if retry == source:
            return None
        if retry.exists():
            raise CollisionUnresolved(
                f"Both {candidate.name} and {retry.name} already exist in {source.parent}"
            )
        LOGGER.debug("Target %s is taken, using %s", candidate.name, retry.name)
        return retry


def _same_file(first: Path, second: Path) -> bool:
    try:
        return os.path.samefile(first, second)
    except OSError:
        return False


__all__ = [
    "COLLISION_SUFFIX_FORMAT",
    "CollisionUnresolved",
    "NameResolver",
    "sanitize_filename",
    "split_extension",
]
