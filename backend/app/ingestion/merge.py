"""
Merge/upsert engine: moves a run's staging rows into the canonical store.

Staging columns are untyped text, so every structured field is re-parsed
here through the cell normalizers. Each field conversion yields a
FieldResult; a failed field degrades to None and is recorded on the row's
outcome, never aborting the row. Every staging row is counted, including
rows whose residual document could not be decoded.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping

from ..models.media import MediaItem
from .normalizers import (
    CellNormalizer,
    CellShape,
    FieldError,
    FieldResult,
    coerce_epoch_millis,
    coerce_integer,
    coerce_timestamp,
    parse_list,
)
from .protocols import ImportRun

logger = logging.getLogger(__name__)

# Residual sub-documents surfaced as their own columns
RESIDUAL_DOCUMENTS = ("content", "thumbnails", "cbs", "ytcp", "yt", "msn", "pl2")

# Plain text columns: canonical column -> staging column
TEXT_FIELDS = {
    "external_id": "id",
    "guid": "guid",
    "title": "title",
    "series_title": "series_title",
    "content_type": "content_type",
    "availability_state": "availability_state",
    "provider": "provider",
    "description": "description",
    "primary_category_name": "primary_category_name",
    "primary_category_id": "primary_category_id",
    "source_partner": "source_partner",
    "video_id": "video_id",
}


def _as_list(value: Any, field_name: str) -> FieldResult:
    return FieldResult(value=parse_list(value))


_NORMALIZER = CellNormalizer()


def _shaped(shape: CellShape) -> Callable[[Any, str], FieldResult]:
    def convert(value: Any, field_name: str) -> FieldResult:
        return _NORMALIZER.normalize(value, shape, field_name)
    return convert


# Typed columns: canonical column -> (staging column, converter)
TYPED_FIELDS: dict[str, tuple[str, Callable[[Any, str], FieldResult]]] = {
    "season_number": ("season_number", coerce_integer),
    "episode_number": ("episode_number", coerce_integer),
    "countries": ("countries", _as_list),
    "premium_features": ("premium_features", _as_list),
    "updated_timestamp": ("updated", coerce_epoch_millis),
    "added_timestamp": ("added", coerce_epoch_millis),
    "available_date": ("available_date", coerce_timestamp),
    "expiration_date": ("expiration_date", coerce_timestamp),
    "pub_date": ("pub_date", coerce_timestamp),
    "ratings": ("ratings", _shaped(CellShape.JSON_DOCUMENT)),
    "youtube_video_ids": ("youtube_video_ids", _shaped(CellShape.FLATTENED_ID_LIST)),
}


@dataclass
class RowOutcome:
    """Typed values for one staging row plus any per-field failures."""
    values: dict[str, Any]
    errors: list[FieldError] = field(default_factory=list)

    def take(self, column: str, result: FieldResult) -> None:
        self.values[column] = result.value
        if result.error is not None:
            self.errors.append(result.error)


@dataclass
class MergeResult:
    """Counts from one merge pass."""
    rows_processed: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    field_errors: int = 0
    rows_with_errors: int = 0


def decode_residual(raw: Any) -> FieldResult:
    """Decode a staged residual document; anything unreadable becomes {}."""
    if isinstance(raw, dict):
        return FieldResult(value=raw)
    if raw is None or raw == "":
        return FieldResult(value={})
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError, RecursionError):
        return FieldResult(
            value={},
            error=FieldError(field="raw_row", raw=str(raw)[:200], reason="unreadable residual document"),
        )
    if not isinstance(decoded, dict):
        return FieldResult(
            value={},
            error=FieldError(field="raw_row", raw=str(raw)[:200], reason="residual document is not an object"),
        )
    return FieldResult(value=decoded)


def extract_document(residual: Mapping[str, Any], name: str) -> FieldResult:
    """Pull one sub-document out of the residual; JSON text is parsed."""
    value = residual.get(name)
    if isinstance(value, str):
        return _NORMALIZER.normalize(value, CellShape.JSON_DOCUMENT, name)
    return FieldResult(value=value)


def convert_row(row: Mapping[str, Any]) -> RowOutcome:
    """
    Convert one staging row into canonical column values.

    Args:
        row: Staging row (sqlite3.Row or dict keyed by staging column)

    Returns:
        RowOutcome with every canonical column set (None where absent or invalid)
    """
    outcome = RowOutcome(values={})

    for column, staging_column in TEXT_FIELDS.items():
        outcome.values[column] = row[staging_column]

    for column, (staging_column, convert) in TYPED_FIELDS.items():
        outcome.take(column, convert(row[staging_column], column))

    residual = decode_residual(row["raw_row"])
    if residual.error is not None:
        outcome.errors.append(residual.error)
    for name in RESIDUAL_DOCUMENTS:
        outcome.take(name, extract_document(residual.value, name))

    return outcome


class MergeEngine:
    """Upserts every staging row of a run into media_items."""

    def __init__(self, repository):
        self.repository = repository

    def merge(self, cursor: sqlite3.Cursor, run: ImportRun) -> MergeResult:
        """
        Merge a run's staging rows in one set-based upsert.

        Args:
            cursor: Cursor of the run's open transaction
            run: The run whose staging rows are merged

        Returns:
            MergeResult with processed, inserted and updated counts

        Raises:
            sqlite3.Error: the upsert failed (the caller rolls back)
        """
        result = MergeResult()

        def items() -> Iterator[MediaItem]:
            for row in self.repository.iter_staging(cursor, run.run_id):
                outcome = convert_row(row)
                result.rows_processed += 1
                if outcome.errors:
                    result.rows_with_errors += 1
                    result.field_errors += len(outcome.errors)
                    for error in outcome.errors:
                        logger.debug(
                            f"Row {result.rows_processed}: {error.field} set to null ({error.reason})"
                        )
                yield MediaItem(**outcome.values)

        inserted, updated = self.repository.upsert_items(cursor, items())
        result.rows_inserted = inserted
        result.rows_updated = updated

        logger.info(
            f"Merged {result.rows_processed} rows for run {run.run_id} "
            f"({inserted} inserted, {updated} updated, {result.field_errors} field errors)"
        )
        return result
