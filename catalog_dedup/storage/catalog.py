"""SQLite-backed catalog store with insert-only audit tables."""
from __future__ import annotations

import contextlib
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

import orjson

from catalog_dedup.detection.grouping import group_key
from catalog_dedup.errors import AlreadyArchivedError, EntryNotFoundError
from catalog_dedup.quality.scoring import score_entry
from catalog_dedup.storage.models import (
    ArchivedEntry,
    CanonicalMapping,
    CatalogEntry,
    DismissedGroup,
    EntryDetail,
    utcnow,
)

_PREVIEW_CHARS = 200
# stays below SQLITE_MAX_VARIABLE_NUMBER on older builds
_LOOKUP_CHUNK = 500

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS entries (
        entry_id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        summary TEXT,
        content_text TEXT,
        content_hash TEXT,
        file_link TEXT,
        grade_levels_json TEXT NOT NULL DEFAULT '[]',
        metadata_json TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        last_modified TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS canonical_mappings (
        duplicate_id TEXT PRIMARY KEY,
        canonical_id TEXT NOT NULL,
        detection_method TEXT,
        resolved_by TEXT,
        resolved_at TEXT NOT NULL,
        notes TEXT,
        CHECK (duplicate_id != canonical_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_canonical_id ON canonical_mappings(canonical_id)",
    """
    CREATE TABLE IF NOT EXISTS archived_entries (
        archive_id INTEGER PRIMARY KEY AUTOINCREMENT,
        entry_id TEXT NOT NULL,
        snapshot_json TEXT NOT NULL,
        canonical_id TEXT NOT NULL,
        archived_by TEXT,
        archived_at TEXT NOT NULL,
        archive_reason TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dismissed_groups (
        dismissal_id INTEGER PRIMARY KEY AUTOINCREMENT,
        entry_ids_key TEXT NOT NULL,
        entry_ids_json TEXT NOT NULL,
        detection_method TEXT,
        dismissed_by TEXT,
        dismissed_at TEXT NOT NULL,
        notes TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_dismissed_key ON dismissed_groups(entry_ids_key)",
]


def _chunks(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class CatalogStore:
    """Local implementation of the catalog collaborator.

    Every public method opens its own connection, so instances can be shared
    with worker threads. ``archive_entry`` is the only multi-statement write
    and runs inside a single ``BEGIN IMMEDIATE`` transaction.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as connection:
            for ddl in _SCHEMA:
                connection.execute(ddl)

    @contextlib.contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        connection = sqlite3.connect(self._path, isolation_level=None)
        connection.row_factory = sqlite3.Row
        try:
            yield connection
        finally:
            connection.close()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection() as connection:
            connection.execute("BEGIN IMMEDIATE")
            try:
                yield connection
            except BaseException:
                connection.execute("ROLLBACK")
                raise
            connection.execute("COMMIT")

    # -- live catalog -----------------------------------------------------

    def upsert_entries(self, entries: Iterable[CatalogEntry]) -> int:
        """Insert or refresh live catalog rows, returning the row count."""
        rows = [
            {
                "entry_id": entry.entry_id,
                "title": entry.title,
                "summary": entry.summary,
                "content_text": entry.content_text,
                "content_hash": entry.content_hash,
                "file_link": entry.file_link,
                "grade_levels_json": orjson.dumps(entry.grade_levels).decode(),
                "metadata_json": orjson.dumps(entry.metadata).decode(),
                "created_at": _iso(entry.created_at),
                "last_modified": _iso(entry.last_modified),
            }
            for entry in entries
        ]
        if not rows:
            return 0
        insert_sql = """
            INSERT INTO entries (
                entry_id, title, summary, content_text, content_hash,
                file_link, grade_levels_json, metadata_json, created_at, last_modified
            ) VALUES (
                :entry_id, :title, :summary, :content_text, :content_hash,
                :file_link, :grade_levels_json, :metadata_json, :created_at, :last_modified
            )
            ON CONFLICT(entry_id) DO UPDATE SET
                title=excluded.title,
                summary=excluded.summary,
                content_text=excluded.content_text,
                content_hash=excluded.content_hash,
                file_link=excluded.file_link,
                grade_levels_json=excluded.grade_levels_json,
                metadata_json=excluded.metadata_json,
                last_modified=excluded.last_modified
        """
        with self._transaction() as connection:
            connection.executemany(insert_sql, rows)
        return len(rows)

    def get_entry(self, entry_id: str) -> Optional[CatalogEntry]:
        with self._connection() as connection:
            row = connection.execute("SELECT * FROM entries WHERE entry_id = ?", (entry_id,)).fetchone()
        return self._row_to_entry(row) if row is not None else None

    def fetch_entry_details(self, entry_ids: Iterable[str]) -> List[EntryDetail]:
        """Batched detail lookup; ids missing from the live catalog are skipped."""
        wanted = sorted(set(entry_ids))
        details: List[EntryDetail] = []
        if not wanted:
            return details
        with self._connection() as connection:
            for chunk in _chunks(wanted, _LOOKUP_CHUNK):
                placeholders = ", ".join("?" for _ in chunk)
                rows = connection.execute(
                    f"SELECT * FROM entries WHERE entry_id IN ({placeholders})",
                    tuple(chunk),
                ).fetchall()
                details.extend(self._row_to_detail(row) for row in rows)
        return details

    # -- resolution ---------------------------------------------------------

    def get_canonical_mapping(self, duplicate_id: str) -> Optional[CanonicalMapping]:
        with self._connection() as connection:
            row = connection.execute(
                "SELECT * FROM canonical_mappings WHERE duplicate_id = ?", (duplicate_id,)
            ).fetchone()
        return CanonicalMapping(**dict(row)) if row is not None else None

    def canonical_for(self, entry_id: str) -> str:
        """Follow mapping chains to the entry that currently stands for ``entry_id``."""
        seen = {entry_id}
        current = entry_id
        while True:
            mapping = self.get_canonical_mapping(current)
            if mapping is None or mapping.canonical_id in seen:
                return current
            current = mapping.canonical_id
            seen.add(current)

    def archive_entry(
        self,
        entry_id: str,
        canonical_id: str,
        *,
        archived_by: Optional[str] = None,
        detection_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ArchivedEntry:
        """Snapshot, map and remove one duplicate as a single atomic unit."""
        with self._transaction() as connection:
            existing = connection.execute(
                "SELECT canonical_id FROM canonical_mappings WHERE duplicate_id = ?", (entry_id,)
            ).fetchone()
            if existing is not None:
                raise AlreadyArchivedError(entry_id, existing["canonical_id"])
            row = connection.execute("SELECT * FROM entries WHERE entry_id = ?", (entry_id,)).fetchone()
            if row is None:
                raise EntryNotFoundError(entry_id)
            canonical = connection.execute(
                "SELECT 1 FROM entries WHERE entry_id = ?", (canonical_id,)
            ).fetchone()
            if canonical is None:
                raise EntryNotFoundError(canonical_id, role="Canonical entry")

            now = utcnow()
            archived = ArchivedEntry(
                entry_id=entry_id,
                snapshot=self._row_to_entry(row).model_dump(mode="json"),
                canonical_id=canonical_id,
                archived_by=archived_by,
                archived_at=now,
                archive_reason=f"Archived as duplicate of {canonical_id}",
            )
            connection.execute(
                """
                INSERT INTO archived_entries (
                    entry_id, snapshot_json, canonical_id, archived_by, archived_at, archive_reason
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    archived.entry_id,
                    orjson.dumps(archived.snapshot).decode(),
                    archived.canonical_id,
                    archived.archived_by,
                    _iso(archived.archived_at),
                    archived.archive_reason,
                ),
            )
            connection.execute(
                """
                INSERT INTO canonical_mappings (
                    duplicate_id, canonical_id, detection_method, resolved_by, resolved_at, notes
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (entry_id, canonical_id, detection_method, archived_by, _iso(now), notes),
            )
            connection.execute("DELETE FROM entries WHERE entry_id = ?", (entry_id,))
        return archived

    def list_mappings(self) -> List[CanonicalMapping]:
        with self._connection() as connection:
            rows = connection.execute("SELECT * FROM canonical_mappings ORDER BY resolved_at").fetchall()
        return [CanonicalMapping(**dict(row)) for row in rows]

    def list_archived(self, since: Optional[datetime] = None) -> List[ArchivedEntry]:
        with self._connection() as connection:
            rows = connection.execute("SELECT * FROM archived_entries ORDER BY archive_id").fetchall()
        archived = [
            ArchivedEntry(
                entry_id=row["entry_id"],
                snapshot=orjson.loads(row["snapshot_json"]),
                canonical_id=row["canonical_id"],
                archived_by=row["archived_by"],
                archived_at=row["archived_at"],
                archive_reason=row["archive_reason"],
            )
            for row in rows
        ]
        if since is not None:
            archived = [item for item in archived if item.archived_at >= since]
        return archived

    # -- dismissals ---------------------------------------------------------

    def insert_dismissal(self, dismissal: DismissedGroup) -> None:
        with self._transaction() as connection:
            connection.execute(
                """
                INSERT INTO dismissed_groups (
                    entry_ids_key, entry_ids_json, detection_method, dismissed_by, dismissed_at, notes
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    group_key(dismissal.entry_ids),
                    orjson.dumps(list(dismissal.entry_ids)).decode(),
                    dismissal.detection_method,
                    dismissal.dismissed_by,
                    _iso(dismissal.dismissed_at),
                    dismissal.notes,
                ),
            )

    def list_dismissals(self) -> List[DismissedGroup]:
        with self._connection() as connection:
            rows = connection.execute("SELECT * FROM dismissed_groups ORDER BY dismissal_id").fetchall()
        return [
            DismissedGroup(
                entry_ids=orjson.loads(row["entry_ids_json"]),
                detection_method=row["detection_method"],
                dismissed_by=row["dismissed_by"],
                dismissed_at=row["dismissed_at"],
                notes=row["notes"],
            )
            for row in rows
        ]

    def dismissal_exists(self, key: str) -> bool:
        with self._connection() as connection:
            row = connection.execute(
                "SELECT 1 FROM dismissed_groups WHERE entry_ids_key = ? LIMIT 1", (key,)
            ).fetchone()
        return row is not None

    # -- row mapping --------------------------------------------------------

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> CatalogEntry:
        return CatalogEntry(
            entry_id=row["entry_id"],
            title=row["title"],
            summary=row["summary"],
            content_text=row["content_text"],
            content_hash=row["content_hash"],
            file_link=row["file_link"],
            grade_levels=orjson.loads(row["grade_levels_json"]),
            metadata=orjson.loads(row["metadata_json"]),
            created_at=row["created_at"],
            last_modified=row["last_modified"],
        )

    @classmethod
    def _row_to_detail(cls, row: sqlite3.Row) -> EntryDetail:
        content = row["content_text"] or ""
        summary = row["summary"]
        entry = cls._row_to_entry(row)
        score = score_entry(entry)
        return EntryDetail(
            entry_id=row["entry_id"],
            title=row["title"],
            summary=summary,
            content_length=len(content),
            grade_levels=orjson.loads(row["grade_levels_json"]),
            has_summary=bool(summary and summary.strip()),
            file_link=row["file_link"],
            content_preview=content[:_PREVIEW_CHARS] or None,
            last_modified=entry.last_modified,
            canonical_score=score.total,
            metadata_completeness=score.completeness,
            quality_notes=score.quality_notes,
        )
