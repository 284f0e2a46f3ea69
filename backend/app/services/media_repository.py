"""
Media catalog repository with SQLite backend.

Owns every statement the ingestion pipeline runs against the store:
- staging area: clear, bulk insert per batch, read back per run
- canonical store: set-based upsert keyed by external_id
- import run log
plus the read queries behind the items API.

List and document columns are stored as JSON text and decoded on read.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Optional

from ..config import Config
from ..db import BaseRepository, ensure_schema
from ..models.enums import RunStatus
from ..models.media import MediaItem

if TYPE_CHECKING:
    from ..ingestion.protocols import RunSummary, StagingRecord

logger = logging.getLogger(__name__)

JSON_COLUMNS = (
    "countries",
    "premium_features",
    "ratings",
    "youtube_video_ids",
    "content",
    "thumbnails",
    "cbs",
    "ytcp",
    "yt",
    "msn",
    "pl2",
)

_MAPPED = MediaItem.mapped_columns()
_UPDATABLE = [c for c in _MAPPED if c != "external_id"]

UPSERT_SQL = f"""
    INSERT INTO media_items ({', '.join(_MAPPED)})
    VALUES ({', '.join('?' for _ in _MAPPED)})
    ON CONFLICT (external_id) DO UPDATE SET
        {', '.join(f'{c} = excluded.{c}' for c in _UPDATABLE)},
        updated_at = CURRENT_TIMESTAMP
"""


def _encode(column: str, value: Any) -> Any:
    """Encode a typed value for its SQLite column."""
    if value is None:
        return None
    if column in JSON_COLUMNS:
        return json.dumps(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return value


def _decode_json(value: Optional[str]) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError:
        logger.warning(f"Undecodable JSON column value: {value[:80]!r}")
        return None


def _decode_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class MediaRepository(BaseRepository):
    """
    Thread-safe SQLite repository for media items and the staging area.

    Ingestion statements take an explicit cursor so the orchestrator can
    run truncate, load and merge inside one transaction.
    """

    def __init__(self, db_path: Optional[str] = None):
        super().__init__(db_path=db_path, use_wal=True)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """One atomic unit of work (BEGIN IMMEDIATE ... COMMIT, ROLLBACK on error)."""
        with self._transaction() as cursor:
            yield cursor

    # === Staging area ===

    def clear_staging(self, cursor: sqlite3.Cursor) -> int:
        """Discard all staging rows. Returns rows removed."""
        cursor.execute("DELETE FROM media_items_staging")
        return cursor.rowcount

    def insert_staging_batch(
        self,
        cursor: sqlite3.Cursor,
        run_id: str,
        records: list["StagingRecord"],
    ) -> int:
        """Bulk insert one batch of staging records for a run."""
        if not records:
            return 0

        columns = records[0].column_names()
        sql = f"""
            INSERT INTO media_items_staging (run_id, {', '.join(columns)})
            VALUES (?, {', '.join('?' for _ in columns)})
        """

        params = []
        for record in records:
            row = [run_id]
            for column in columns:
                value = getattr(record, column)
                row.append(json.dumps(value) if column == "raw_row" else value)
            params.append(row)

        cursor.executemany(sql, params)
        return len(params)

    def iter_staging(self, cursor: sqlite3.Cursor, run_id: str) -> Iterator[sqlite3.Row]:
        """Stream a run's staging rows in load order on a separate read cursor."""
        reader = cursor.connection.execute(
            "SELECT * FROM media_items_staging WHERE run_id = ? ORDER BY staging_id",
            (run_id,),
        )
        yield from reader

    def count_staging(self, run_id: Optional[str] = None) -> int:
        conn = self._get_connection()
        if run_id is None:
            row = conn.execute("SELECT COUNT(*) FROM media_items_staging").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM media_items_staging WHERE run_id = ?", (run_id,)
            ).fetchone()
        return row[0]

    # === Canonical store ===

    def upsert_items(self, cursor: sqlite3.Cursor, items: Iterable[MediaItem]) -> tuple[int, int]:
        """
        Upsert items by external_id with full-replace semantics.

        Every mapped column takes the incoming value (including None) and
        updated_at is refreshed.

        Returns:
            (inserted, updated) counts
        """
        before = cursor.execute("SELECT COUNT(*) FROM media_items").fetchone()[0]
        processed = 0

        def params():
            nonlocal processed
            for item in items:
                processed += 1
                yield [_encode(column, getattr(item, column)) for column in _MAPPED]

        cursor.executemany(UPSERT_SQL, params())
        after = cursor.execute("SELECT COUNT(*) FROM media_items").fetchone()[0]
        inserted = after - before
        return inserted, processed - inserted

    def count(self) -> int:
        """Get total number of media items."""
        conn = self._get_connection()
        return conn.execute("SELECT COUNT(*) FROM media_items").fetchone()[0]

    def get_by_external_id(self, external_id: str) -> Optional[MediaItem]:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM media_items WHERE external_id = ?", (external_id,)
        ).fetchone()
        return self._row_to_item(row) if row else None

    def list_items(
        self,
        search: str = "",
        sort_by: str = Config.DEFAULT_SORT_COLUMN,
        sort_order: str = "ASC",
    ) -> list[MediaItem]:
        """
        List media items with optional title/series search.

        Unknown sort columns fall back to title; sort order to ASC.
        """
        if sort_by not in Config.SORTABLE_COLUMNS:
            sort_by = Config.DEFAULT_SORT_COLUMN
        sort_order = sort_order.upper() if sort_order.upper() in ("ASC", "DESC") else "ASC"

        sql = "SELECT * FROM media_items"
        params: list[Any] = []
        search = search.strip()
        if search:
            # LIKE is case-insensitive for ASCII in SQLite
            sql += " WHERE title LIKE ? OR series_title LIKE ?"
            pattern = f"%{search}%"
            params.extend([pattern, pattern])
        sql += f" ORDER BY {sort_by} {sort_order}, id ASC"

        conn = self._get_connection()
        return [self._row_to_item(row) for row in conn.execute(sql, params).fetchall()]

    def _row_to_item(self, row: sqlite3.Row) -> MediaItem:
        """Convert database row to MediaItem."""
        data = {column: row[column] for column in _MAPPED}
        for column in JSON_COLUMNS:
            data[column] = _decode_json(data[column])
        for column in ("available_date", "expiration_date", "pub_date"):
            data[column] = _decode_datetime(data[column])
        return MediaItem(
            **data,
            id=row["id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # === Import run log ===

    def log_run_start(self, run_id: str, source_name: str) -> None:
        """Record a run as in_progress (committed on its own)."""
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO import_runs (run_id, source_name, status) VALUES (?, ?, ?)",
                (run_id, source_name, RunStatus.IN_PROGRESS.value),
            )

    def log_run_complete(self, summary: "RunSummary") -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                UPDATE import_runs
                SET status = ?, rows_staged = ?, rows_processed = ?, rows_skipped = ?,
                    field_errors = ?, finished_at = CURRENT_TIMESTAMP
                WHERE run_id = ?
            """, (
                RunStatus.COMPLETE.value,
                summary.rows_staged,
                summary.rows_processed,
                summary.rows_skipped,
                summary.field_errors,
                summary.run_id,
            ))

    def log_run_failed(self, run_id: str, category: str, message: str) -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                UPDATE import_runs
                SET status = ?, error_category = ?, error_message = ?,
                    finished_at = CURRENT_TIMESTAMP
                WHERE run_id = ?
            """, (RunStatus.FAILED.value, category, message[:500], run_id))

    def recent_runs(self, limit: int = 20) -> list[dict]:
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM import_runs ORDER BY started_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [dict(row) for row in rows]


# Singleton repository instance
_media_repo: Optional[MediaRepository] = None


def get_media_repository() -> MediaRepository:
    """Get or create the media repository singleton (schema migrated on first use)."""
    global _media_repo
    if _media_repo is None:
        db_path = Config.database_path()
        ensure_schema(db_path)
        _media_repo = MediaRepository(db_path)
    return _media_repo
