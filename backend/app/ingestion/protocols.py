"""
Protocols and data classes for media ingestion.

Defines the interface that row sources must implement, the staging record
format produced by the reshaper, and the run-scoped values threaded
through every stage of an import.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field, fields
from typing import Any, Iterator, Optional, Protocol

from ..models.enums import ErrorCategory, ImportState


@dataclass
class StagingRecord:
    """
    One reshaped input row, as written to the staging area.

    Every mapped field is untyped text; the merge step re-parses them.
    raw_row is the residual document: everything not surfaced as a column,
    plus assembled array groups and namespace buckets.
    """
    id: Optional[str] = None
    guid: Optional[str] = None
    title: Optional[str] = None
    series_title: Optional[str] = None
    season_number: Optional[str] = None
    episode_number: Optional[str] = None
    content_type: Optional[str] = None
    availability_state: Optional[str] = None
    countries: Optional[str] = None
    premium_features: Optional[str] = None
    updated: Optional[str] = None
    added: Optional[str] = None
    provider: Optional[str] = None
    description: Optional[str] = None
    available_date: Optional[str] = None
    expiration_date: Optional[str] = None
    ratings: Optional[str] = None
    pub_date: Optional[str] = None
    primary_category_name: Optional[str] = None
    primary_category_id: Optional[str] = None
    source_partner: Optional[str] = None
    video_id: Optional[str] = None
    youtube_video_ids: Optional[str] = None
    raw_row: dict[str, Any] = field(default_factory=dict)

    # For tracking
    row_number: Optional[int] = None

    @classmethod
    def column_names(cls) -> list[str]:
        """Staging columns in insert order (row_number is not persisted)."""
        return [f.name for f in fields(cls) if f.name != "row_number"]


class RowSource(Protocol):
    """
    Protocol for ingestion row sources.

    Each source reads one input format (CSV stream, JSON body) and yields
    flat string-keyed records. Sources are pulled lazily: the consumer
    decides when the next row is produced.
    """

    def iter_rows(self) -> Iterator[dict[str, Any]]:
        """
        Iterate over input rows.

        Yields:
            One dict per parseable row; malformed rows are skipped
        """
        ...

    def get_source_name(self) -> str:
        """
        Get a short identifier for this source.

        Returns:
            Source name (e.g., 'csv:catalog.csv', 'json')
        """
        ...

    def validate(self) -> None:
        """
        Check the input contract before any work starts.

        Raises:
            IngestionError: invalid_input_format or size_exceeded
        """
        ...

    @property
    def rows_skipped(self) -> int:
        """Number of malformed rows skipped so far."""
        ...


class IngestionError(Exception):
    """A run-level ingestion failure with a single category."""

    def __init__(self, category: ErrorCategory, message: str):
        super().__init__(message)
        self.category = category
        self.message = message

    def __str__(self) -> str:
        return f"{self.category.value}: {self.message}"


class CancelToken:
    """Cooperative cancellation flag checked between import stages."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise IngestionError(ErrorCategory.CANCELLED, "Import cancelled")


# Allowed state machine edges; FAILED is reachable from anywhere
_TRANSITIONS = {
    ImportState.IDLE: {ImportState.TRUNCATING_STAGING},
    ImportState.TRUNCATING_STAGING: {ImportState.LOADING},
    ImportState.LOADING: {ImportState.MERGING},
    ImportState.MERGING: {ImportState.COMMITTED},
    ImportState.COMMITTED: set(),
    ImportState.FAILED: set(),
}


@dataclass
class ImportRun:
    """
    One import invocation, passed through every stage.

    run_id scopes this run's staging rows so no stage relies on the
    staging area holding only this run's data.
    """
    source_name: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ImportState = ImportState.IDLE
    cancel_token: CancelToken = field(default_factory=CancelToken)
    started_at: float = field(default_factory=time.monotonic)

    rows_read: int = 0
    rows_staged: int = 0
    batches_inserted: int = 0
    error: Optional[IngestionError] = None

    def transition(self, new_state: ImportState) -> None:
        """Move to new_state, enforcing the run state machine."""
        if new_state is ImportState.FAILED:
            self.state = new_state
            return
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid import transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


@dataclass
class RunSummary:
    """Statistics from a committed import run."""
    run_id: str
    source_name: str
    rows_processed: int = 0
    rows_staged: int = 0
    rows_skipped: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    field_errors: int = 0
    rows_with_errors: int = 0
    batches: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/responses."""
        return {
            "run_id": self.run_id,
            "source_name": self.source_name,
            "rows_processed": self.rows_processed,
            "rows_staged": self.rows_staged,
            "rows_skipped": self.rows_skipped,
            "rows_inserted": self.rows_inserted,
            "rows_updated": self.rows_updated,
            "field_errors": self.field_errors,
            "rows_with_errors": self.rows_with_errors,
            "batches": self.batches,
            "duration_seconds": round(self.duration_seconds, 3),
        }
