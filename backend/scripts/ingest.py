#!/usr/bin/env python3
"""
Media catalog import CLI tool.

Usage:
    python scripts/ingest.py --csv catalog.csv       # Import a vendor CSV export
    python scripts/ingest.py --json batch.json       # Import a {"items": [...]} file
    python scripts/ingest.py --preview catalog.csv   # Preview first 10 converted rows
    python scripts/ingest.py --stats                 # Show database statistics
    python scripts/ingest.py --runs                  # Show recent import runs

SIGTERM cancels a running import between batches; the run is rolled back.
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path

# Add backend to path
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

from app.config import Config
from app.db import ensure_schema
from app.ingestion import CancelToken, ImportOrchestrator, IngestionError
from app.ingestion.adapters import CsvRowSource, JsonRowSource
from app.models.enums import ErrorCategory
from app.services.media_repository import MediaRepository


def get_repository() -> MediaRepository:
    db_path = Config.database_path()
    ensure_schema(db_path)
    return MediaRepository(db_path)


def open_source(path: Path, kind: str):
    """Build a row source for a file. The caller closes the returned handle."""
    size = path.stat().st_size

    if kind == "csv":
        handle = path.open("rb")
        return CsvRowSource(handle, filename=path.name, size_bytes=size), handle

    with path.open("rb") as f:
        try:
            payload = json.load(f)
        except ValueError as e:
            raise IngestionError(
                ErrorCategory.INVALID_INPUT_FORMAT, f"File is not valid JSON: {e}"
            ) from e
    return JsonRowSource.from_payload(payload, size_bytes=size), None


def import_file(path: Path, kind: str, batch_size: int) -> int:
    """Import one file. Returns a process exit code."""
    print(f"\n{'='*60}")
    print(f"Importing: {path}")
    print(f"{'='*60}")

    repo = get_repository()
    orchestrator = ImportOrchestrator(repository=repo, batch_size=batch_size)

    token = CancelToken()
    signal.signal(signal.SIGTERM, lambda signum, frame: token.cancel())

    handle = None
    try:
        source, handle = open_source(path, kind)
        summary = orchestrator.import_batch(source, cancel_token=token)
    except IngestionError as e:
        print(f"\nImport failed [{e.category.value}]: {e.message}")
        return 1
    finally:
        if handle is not None:
            handle.close()
        repo.close()

    print(f"\nCompleted in {summary.duration_seconds:.1f}s")
    print(f"  Rows processed: {summary.rows_processed:,}")
    print(f"  Rows staged: {summary.rows_staged:,} in {summary.batches:,} batches")
    print(f"  Inserted: {summary.rows_inserted:,}")
    print(f"  Updated: {summary.rows_updated:,}")
    print(f"  Malformed lines skipped: {summary.rows_skipped:,}")
    print(f"  Fields downgraded to null: {summary.field_errors:,}")
    print(f"  Rows with downgraded fields: {summary.rows_with_errors:,}")
    return 0


def preview_file(path: Path, kind: str, limit: int = 10) -> int:
    """Preview converted rows from a file without writing."""
    print(f"\nPreview: {path} (first {limit} rows)")
    print("="*60)

    orchestrator = ImportOrchestrator(repository=get_repository())
    handle = None
    try:
        source, handle = open_source(path, kind)
        rows = orchestrator.preview(source, limit=limit)
    except IngestionError as e:
        print(f"\nPreview failed [{e.category.value}]: {e.message}")
        return 1
    finally:
        if handle is not None:
            handle.close()

    for row in rows:
        print(f"\n{row['row_number']}. {row['title'] or 'N/A'} ({row['external_id'] or 'no id'})")
        print(f"   Series: {row['series_title'] or 'N/A'}, "
              f"S{row['season_number'] or '?'}E{row['episode_number'] or '?'}")
        print(f"   Countries: {', '.join(row['countries'] or []) or 'N/A'}")
        for error in row["field_errors"]:
            print(f"   ! {error}")
    return 0


def show_stats():
    """Show database statistics."""
    print("\n" + "="*60)
    print("Media Catalog Statistics")
    print("="*60)

    repo = get_repository()
    conn = repo._get_connection()
    cursor = conn.cursor()

    print(f"\nTotal media items: {repo.count():,}")
    print(f"Staging rows (last run): {repo.count_staging():,}")

    print("\nBy content type:")
    cursor.execute('''
        SELECT COALESCE(content_type, '(none)'), COUNT(*) as count
        FROM media_items
        GROUP BY content_type
        ORDER BY count DESC
        LIMIT 10
    ''')
    for row in cursor.fetchall():
        print(f"  {row[0]}: {row[1]:,}")

    print("\nTop 10 series:")
    cursor.execute('''
        SELECT series_title, COUNT(*) as count
        FROM media_items
        WHERE series_title IS NOT NULL
        GROUP BY series_title
        ORDER BY count DESC
        LIMIT 10
    ''')
    for row in cursor.fetchall():
        print(f"  {row[0]}: {row[1]:,}")

    repo.close()


def show_runs(limit: int = 10):
    """Show recent import runs."""
    repo = get_repository()
    print("\nRecent import runs:")
    for run in repo.recent_runs(limit):
        line = (f"  {run['started_at']}: {run['source_name']} [{run['status']}] "
                f"{run['rows_processed']:,} processed, {run['rows_skipped']:,} skipped")
        if run["error_category"]:
            line += f" ({run['error_category']}: {run['error_message']})"
        print(line)
    repo.close()


def main():
    parser = argparse.ArgumentParser(
        description="Media catalog import CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument("--csv", type=Path, help="CSV file to import")
    parser.add_argument("--json", type=Path, help='JSON file of shape {"items": [...]} to import')
    parser.add_argument(
        "--preview", "-p",
        type=Path,
        help="Preview converted rows from a .csv or .json file"
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics"
    )
    parser.add_argument(
        "--runs",
        action="store_true",
        help="Show recent import runs"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=Config.staging_batch_size(),
        help="Rows per staging insert"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, Config.log_level(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.preview:
        kind = "json" if args.preview.suffix.lower() == ".json" else "csv"
        sys.exit(preview_file(args.preview, kind))

    if args.stats:
        show_stats()
        return

    if args.runs:
        show_runs()
        return

    if args.csv or args.json:
        kind, path = ("csv", args.csv) if args.csv else ("json", args.json)
        code = import_file(path, kind, args.batch_size)
        if code == 0:
            show_stats()
        sys.exit(code)

    # Default: show help
    parser.print_help()


if __name__ == "__main__":
    main()
