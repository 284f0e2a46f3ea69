"""
Enums for type-safe string constants in the media catalog backend.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Category of a run-level ingestion failure."""
    INVALID_INPUT_FORMAT = "invalid_input_format"
    SIZE_EXCEEDED = "size_exceeded"
    PARSE_FAILURE = "parse_failure"
    STORE_FAILURE = "store_failure"
    CANCELLED = "cancelled"


class ImportState(str, Enum):
    """Lifecycle of one import run."""
    IDLE = "idle"
    TRUNCATING_STAGING = "truncating_staging"
    LOADING = "loading"
    MERGING = "merging"
    COMMITTED = "committed"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Status recorded in the import_runs log."""
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"
