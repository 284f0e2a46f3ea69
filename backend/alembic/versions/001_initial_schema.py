"""Initial schema - media catalog with staging area and import run log.

Revision ID: 001
Revises: None
Create Date: 2026-10-16

Creates core tables: media_items (canonical store), media_items_staging
(untyped per-run staging rows) and import_runs (run log).

List columns (countries, premium_features, youtube_video_ids) and
document columns (ratings, content, thumbnails, namespace buckets) are
stored as JSON text.
"""
from typing import Sequence, Union

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Complete schema SQL inlined for immutability.
SCHEMA_SQL = """
-- Canonical media items, one row per natural key
CREATE TABLE IF NOT EXISTS media_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT UNIQUE,
    guid TEXT,
    title TEXT,
    series_title TEXT,
    season_number INTEGER,
    episode_number INTEGER,
    content_type TEXT,
    availability_state TEXT,
    countries TEXT,
    premium_features TEXT,
    updated_timestamp INTEGER,
    added_timestamp INTEGER,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    provider TEXT,
    description TEXT,
    available_date TIMESTAMP NULL,
    expiration_date TIMESTAMP NULL,
    ratings TEXT,
    youtube_video_ids TEXT,
    primary_category_name TEXT,
    primary_category_id TEXT,
    source_partner TEXT,
    video_id TEXT,
    pub_date TIMESTAMP NULL,
    content TEXT,
    thumbnails TEXT,
    cbs TEXT,
    ytcp TEXT,
    yt TEXT,
    msn TEXT,
    pl2 TEXT
);

-- Staging rows for one import run; every mapped field is untyped text
CREATE TABLE IF NOT EXISTS media_items_staging (
    staging_id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL,
    id TEXT,
    guid TEXT,
    title TEXT,
    series_title TEXT,
    season_number TEXT,
    episode_number TEXT,
    content_type TEXT,
    availability_state TEXT,
    countries TEXT,
    premium_features TEXT,
    updated TEXT,
    added TEXT,
    provider TEXT,
    description TEXT,
    available_date TEXT,
    expiration_date TEXT,
    ratings TEXT,
    pub_date TEXT,
    primary_category_name TEXT,
    primary_category_id TEXT,
    source_partner TEXT,
    video_id TEXT,
    youtube_video_ids TEXT,
    raw_row TEXT
);

-- Import run log (in_progress -> complete | failed)
CREATE TABLE IF NOT EXISTS import_runs (
    run_id TEXT PRIMARY KEY,
    source_name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'in_progress',
    rows_staged INTEGER NOT NULL DEFAULT 0,
    rows_processed INTEGER NOT NULL DEFAULT 0,
    rows_skipped INTEGER NOT NULL DEFAULT 0,
    field_errors INTEGER NOT NULL DEFAULT 0,
    error_category TEXT,
    error_message TEXT,
    started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    finished_at TIMESTAMP
);

-- Indexes for performance
CREATE INDEX IF NOT EXISTS idx_media_items_title ON media_items(title);
CREATE INDEX IF NOT EXISTS idx_media_items_series_title ON media_items(series_title);
CREATE INDEX IF NOT EXISTS idx_media_items_content_type ON media_items(content_type);
CREATE INDEX IF NOT EXISTS idx_media_items_availability_state ON media_items(availability_state);
CREATE INDEX IF NOT EXISTS idx_media_items_staging_run_id ON media_items_staging(run_id);
CREATE INDEX IF NOT EXISTS idx_import_runs_started_at ON import_runs(started_at);
"""


def upgrade() -> None:
    # Use raw DBAPI connection for multi-statement SQL
    conn = op.get_bind()
    raw_conn = conn.connection.dbapi_connection
    raw_conn.executescript(SCHEMA_SQL)


def downgrade() -> None:
    conn = op.get_bind()
    raw_conn = conn.connection.dbapi_connection

    tables = [
        "import_runs",
        "media_items_staging",
        "media_items",
    ]
    for table in tables:
        raw_conn.execute(f"DROP TABLE IF EXISTS {table}")
