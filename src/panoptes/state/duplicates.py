"""Content-hash index used to recognize previously seen files."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .store import MetadataStore

LOGGER = logging.getLogger(__name__)


class DuplicateIndex:
    """Map content hashes to the record that first claimed them.

    The first `record` for a hash wins; later calls with the same hash are
    lookups and never replace the owner. When a `MetadataStore` is supplied
    the mapping is persisted in its `content_index` table and survives
    restarts; otherwise it lives in memory only.
    """

    def __init__(self, store: Optional[MetadataStore] = None) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._owners: Dict[str, str] = {}

    def find_by_hash(self, content_hash: str) -> Optional[str]:
        """Return the owning record id for `content_hash`, if any."""
        with self._lock:
            owner = self._owners.get(content_hash)
            if owner is None and self._store is not None:
                owner = self._store.find_by_hash(content_hash)
                if owner is not None:
                    self._owners[content_hash] = owner
            return owner

    def record(self, content_hash: str, record_id: str) -> str:
        """Map `content_hash` to `record_id` on first insertion only.

        Returns:
            str: The owning record id after the call.

        Raises:
            StoreError: If the persistent backend rejects the insert.
        """
        with self._lock:
            owner = self._owners.get(content_hash)
            if owner is not None:
                return owner
            if self._store is not None:
                owner = self._store.index_hash(content_hash, record_id)
            else:
                owner = record_id
            self._owners[content_hash] = owner
            return owner

    def claim(self, content_hash: str, record_id: str) -> Optional[str]:
        """Record `record_id` as owner, or return the earlier owner of the hash.

        Returns:
            Optional[str]: The id of a previously recorded file with the same
            content, or None if `record_id` is now the owner.
        """
        owner = self.record(content_hash, record_id)
        return None if owner == record_id else owner

    def release(self, content_hash: str, record_id: str) -> None:
        """Forget the mapping if `record_id` owns it; used when a record is dropped."""
        with self._lock:
            if self._owners.get(content_hash) != record_id:
                return
            del self._owners[content_hash]
            if self._store is not None:
                self._store.unindex_hash(content_hash, record_id)
        LOGGER.debug("Released hash %s from record %s", content_hash[:12], record_id)

    def forget(self, record_id: str) -> bool:
        """Delete a stored record together with every hash mapping it owns.

        Returns:
            bool: Whether the store held the record.

        Raises:
            StoreError: If the persistent backend rejects the delete.
        """
        with self._lock:
            owned = [key for key, owner in self._owners.items() if owner == record_id]
            for content_hash in owned:
                del self._owners[content_hash]
            if self._store is None:
                return bool(owned)
            return self._store.delete_record(record_id)


__all__ = ["DuplicateIndex"]
