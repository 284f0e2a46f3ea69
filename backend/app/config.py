"""
Centralized configuration for the media catalog backend.

All constants are defined here to avoid scattered magic numbers
and enable easy configuration management.
"""

import os
from pathlib import Path
from typing import List


class Config:
    """Application configuration constants."""

    # === Ingestion ===
    STAGING_BATCH_SIZE = 500           # Rows per staging bulk insert
    PROGRESS_LOG_EVERY_BATCHES = 20    # Log progress every N batches

    # === Upload limits ===
    MAX_UPLOAD_SIZE_MB = 50
    MAX_UPLOAD_SIZE_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    MAX_JSON_BODY_MB = 10
    MAX_JSON_BODY_BYTES = MAX_JSON_BODY_MB * 1024 * 1024
    MAX_JSON_ITEMS = 100_000
    ALLOWED_CSV_CONTENT_TYPES: List[str] = [
        "text/csv",
        "application/csv",
        "text/plain",
        "application/vnd.ms-excel",
    ]
    ALLOWED_CSV_EXTENSIONS: List[str] = [".csv"]
    MAX_CSV_FIELD_BYTES = 16 * 1024 * 1024

    # === Item listing ===
    SORTABLE_COLUMNS: List[str] = [
        "title",
        "series_title",
        "season_number",
        "episode_number",
        "created_at",
        "updated_timestamp",
    ]
    DEFAULT_SORT_COLUMN = "title"

    # === Environment ===
    @staticmethod
    def log_level() -> str:
        """Log level (DEBUG, INFO, WARNING, ERROR)."""
        return os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def is_dev() -> bool:
        """True when APP_ENV is development."""
        return os.getenv("APP_ENV", "production").lower() == "development"

    @staticmethod
    def staging_batch_size() -> int:
        """Staging batch size, overridable via STAGING_BATCH_SIZE."""
        try:
            value = int(os.getenv("STAGING_BATCH_SIZE", str(Config.STAGING_BATCH_SIZE)))
        except ValueError:
            return Config.STAGING_BATCH_SIZE
        return value if value > 0 else Config.STAGING_BATCH_SIZE

    @staticmethod
    def max_upload_size_bytes() -> int:
        """CSV upload ceiling in bytes (MAX_FILE_SIZE env var, bytes)."""
        try:
            return int(os.getenv("MAX_FILE_SIZE", str(Config.MAX_UPLOAD_SIZE_BYTES)))
        except ValueError:
            return Config.MAX_UPLOAD_SIZE_BYTES

    @staticmethod
    def cors_origins() -> List[str]:
        """Comma-separated CORS origins. Default: local frontend dev servers."""
        raw = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    # === Database Persistence ===
    @staticmethod
    def database_path() -> str:
        """Path to SQLite database file.
        Default: backend/app/data/media.db (relative to app package).
        Override with DATABASE_PATH env var for container deployments.
        """
        default = str(Path(__file__).parent / "data" / "media.db")
        return os.getenv("DATABASE_PATH", default)
