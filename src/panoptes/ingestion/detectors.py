"""Content hashing for duplicate detection."""

from __future__ import annotations

import hashlib
from pathlib import Path

CHUNK_SIZE = 1024 * 1024


class HashComputer:
    """Compute content hashes for deduplication.

    The digest depends only on the bytes of the file, never on its name or
    location. BLAKE2b with a 32-byte digest is used for identity, not for
    security.
    """

    digest_size = 32

    def compute(self, path: Path) -> str:
        """Return a hex digest representing the file contents.

        Raises:
            OSError: If the file cannot be read.
        """
        digest = hashlib.blake2b(digest_size=self.digest_size)
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()


__all__ = ["HashComputer"]
