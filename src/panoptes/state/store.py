"""SQLite-backed metadata store for analysis results."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import StoreError
from .models import FileRecord, StoreStats

LOGGER = logging.getLogger(__name__)

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    original_path TEXT NOT NULL,
    new_path TEXT,
    suggested_name TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    category TEXT,
    confidence REAL NOT NULL,
    analyzer TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_files_hash ON files(content_hash);
CREATE INDEX IF NOT EXISTS idx_files_category ON files(category);
CREATE INDEX IF NOT EXISTS idx_files_created ON files(created_at);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS file_tags (
    file_id TEXT NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (file_id, tag_id)
);

CREATE TABLE IF NOT EXISTS content_index (
    content_hash TEXT PRIMARY KEY,
    record_id TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


class MetadataStore:
    """Persist analysis results, tags and the content-hash index.

    One connection is shared by all worker threads; every statement runs
    under an instance lock.
    """

    def __init__(self, path: Path) -> None:
        """Open (and create if needed) the database at `path`.

        Raises:
            StoreError: If the database cannot be opened or migrated.
        """
        self._path = path.expanduser()
        self._lock = threading.RLock()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._path), check_same_thread=False, timeout=10.0)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot open metadata store {self._path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "MetadataStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Records ----------------------------------------------------------

    def insert_record(self, record: FileRecord) -> None:
        """Insert a record together with its tags.

        Raises:
            StoreError: If the insert fails; nothing is written in that case.
        """
        with self._transaction("insert record") as conn:
            conn.execute(
                """
                INSERT INTO files (
                    id, original_path, new_path, suggested_name, content_hash,
                    category, confidence, analyzer, metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    str(record.original_path),
                    str(record.new_path) if record.new_path is not None else None,
                    record.suggested_name,
                    record.content_hash,
                    record.category,
                    record.confidence,
                    record.analyzer,
                    json.dumps(record.metadata, default=str),
                    record.created_at.isoformat(),
                ),
            )
            for tag in record.tags:
                self._attach_tag(conn, record.id, tag)

    def get_record(self, record_id: str) -> Optional[FileRecord]:
        with self._transaction("read record") as conn:
            row = conn.execute("SELECT * FROM files WHERE id = ?", (record_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_record(conn, row)

    def delete_record(self, record_id: str) -> bool:
        """Delete a record, its tag links and any hash-index entry it owns."""
        with self._transaction("delete record") as conn:
            conn.execute("DELETE FROM content_index WHERE record_id = ?", (record_id,))
            cursor = conn.execute("DELETE FROM files WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def recent_records(self, limit: int = 10) -> List[FileRecord]:
        return self._select_records(
            "SELECT * FROM files ORDER BY created_at DESC LIMIT ?", (limit,), "list records"
        )

    def review_queue(
        self, threshold: Optional[float] = None, limit: int = 20
    ) -> List[FileRecord]:
        """Return records that were persisted without a rename, newest first.

        Args:
            threshold: When given, only records below this confidence.
            limit: Maximum number of records.
        """
        query = "SELECT * FROM files WHERE new_path IS NULL"
        params: tuple[Any, ...] = ()
        if threshold is not None:
            query += " AND confidence < ?"
            params = (threshold,)
        return self._select_records(
            f"{query} ORDER BY created_at DESC LIMIT ?", (*params, limit), "list review queue"
        )

    # Tags -------------------------------------------------------------

    def add_tag(self, record_id: str, tag: str) -> None:
        with self._transaction("add tag") as conn:
            self._attach_tag(conn, record_id, tag)

    def remove_tag(self, record_id: str, tag: str) -> None:
        with self._transaction("remove tag") as conn:
            conn.execute(
                """
                DELETE FROM file_tags
                WHERE file_id = ? AND tag_id = (SELECT id FROM tags WHERE name = ?)
                """,
                (record_id, tag),
            )

    def tags_for(self, record_id: str) -> List[str]:
        with self._transaction("read tags") as conn:
            return self._tags(conn, record_id)

    # Content index ----------------------------------------------------

    def find_by_hash(self, content_hash: str) -> Optional[str]:
        """Return the record id that first claimed `content_hash`, if any."""
        with self._transaction("look up hash") as conn:
            row = conn.execute(
                "SELECT record_id FROM content_index WHERE content_hash = ?", (content_hash,)
            ).fetchone()
            return row["record_id"] if row else None

    def index_hash(self, content_hash: str, record_id: str) -> str:
        """Map `content_hash` to `record_id` unless already mapped.

        Returns:
            str: The owning record id, which is `record_id` only on first insertion.
        """
        with self._transaction("index hash") as conn:
            conn.execute(
                """
                INSERT INTO content_index (content_hash, record_id, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(content_hash) DO NOTHING
                """,
                (content_hash, record_id, _utcnow()),
            )
            row = conn.execute(
                "SELECT record_id FROM content_index WHERE content_hash = ?", (content_hash,)
            ).fetchone()
            return row["record_id"]

    def unindex_hash(self, content_hash: str, record_id: str) -> None:
        """Drop the mapping for `content_hash` if `record_id` owns it."""
        with self._transaction("unindex hash") as conn:
            conn.execute(
                "DELETE FROM content_index WHERE content_hash = ? AND record_id = ?",
                (content_hash, record_id),
            )

    # Reporting --------------------------------------------------------

    def category_counts(self) -> Dict[str, int]:
        with self._transaction("count categories") as conn:
            rows = conn.execute(
                """
                SELECT category, COUNT(*) AS total FROM files
                WHERE category IS NOT NULL
                GROUP BY category ORDER BY total DESC, category
                """
            ).fetchall()
            return {row["category"]: row["total"] for row in rows}

    def stats(self) -> StoreStats:
        with self._transaction("collect stats") as conn:
            total = conn.execute("SELECT COUNT(*) FROM files").fetchone()[0]
            renamed = conn.execute(
                "SELECT COUNT(*) FROM files WHERE new_path IS NOT NULL"
            ).fetchone()[0]
            duplicates = conn.execute(
                """
                SELECT COUNT(*) FROM (
                    SELECT content_hash FROM files GROUP BY content_hash HAVING COUNT(*) > 1
                )
                """
            ).fetchone()[0]
            tags = conn.execute("SELECT COUNT(*) FROM tags").fetchone()[0]
        return StoreStats(
            total_files=total,
            renamed_files=renamed,
            pending_review=total - renamed,
            duplicate_hashes=duplicates,
            tags=tags,
            categories=self.category_counts(),
        )

    # Internal helpers -------------------------------------------------

    def _ensure_schema(self) -> None:
        with self._transaction("initialize schema") as conn:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(SCHEMA_DDL)
        try:
            self._conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            LOGGER.debug("WAL mode unavailable for %s: %s", self._path, exc)

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to {action}: {exc}") from exc

    def _attach_tag(self, conn: sqlite3.Connection, record_id: str, tag: str) -> None:
        conn.execute("INSERT INTO tags (name) VALUES (?) ON CONFLICT(name) DO NOTHING", (tag,))
        conn.execute(
            """
            INSERT INTO file_tags (file_id, tag_id)
            SELECT ?, id FROM tags WHERE name = ?
            ON CONFLICT(file_id, tag_id) DO NOTHING
            """,
            (record_id, tag),
        )

    def _tags(self, conn: sqlite3.Connection, record_id: str) -> List[str]:
        rows = conn.execute(
            """
            SELECT t.name FROM tags t
            JOIN file_tags ft ON ft.tag_id = t.id
            WHERE ft.file_id = ? ORDER BY t.name
            """,
            (record_id,),
        ).fetchall()
        return [row["name"] for row in rows]

    def _select_records(self, query: str, params: tuple[Any, ...], action: str) -> List[FileRecord]:
        with self._transaction(action) as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_record(conn, row) for row in rows]

    def _row_to_record(self, conn: sqlite3.Connection, row: sqlite3.Row) -> FileRecord:
        try:
            metadata = json.loads(row["metadata"]) if row["metadata"] else {}
        except json.JSONDecodeError:
            LOGGER.warning("Corrupt metadata JSON for record %s", row["id"])
            metadata = {}
        return FileRecord(
            id=row["id"],
            original_path=Path(row["original_path"]),
            new_path=Path(row["new_path"]) if row["new_path"] else None,
            suggested_name=row["suggested_name"],
            content_hash=row["content_hash"],
            category=row["category"],
            confidence=row["confidence"],
            analyzer=row["analyzer"],
            metadata=metadata,
            tags=self._tags(conn, row["id"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


__all__ = ["MetadataStore", "SCHEMA_DDL"]
