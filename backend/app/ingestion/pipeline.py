"""
Media import orchestrator.

Orchestrates the flow: row source → reshaper → staging loader → merge engine

One run is one transaction: staging is cleared, the input is streamed into
staging batch by batch, and the staged rows are merged into media_items.
The commit happens only after the merge succeeds; any failure rolls back
staging and canonical changes alike and surfaces a single IngestionError.
"""

import logging
import sqlite3
import threading
from typing import Optional

from ..models.enums import ErrorCategory, ImportState
from .merge import MergeEngine, convert_row
from .protocols import CancelToken, ImportRun, IngestionError, RowSource, RunSummary
from .reshaper import RowReshaper
from .staging import StagingLoader

logger = logging.getLogger(__name__)

# Runs share one staging table; only one may be in flight per process
_RUN_LOCK = threading.Lock()


class ImportOrchestrator:
    """
    Runs one import from a row source to the canonical store.

    Coordinates:
    1. Validating the input contract (before any transaction)
    2. Clearing the staging area
    3. Reshaping and staging rows in bounded batches
    4. Merging staged rows into media_items
    """

    def __init__(
        self,
        repository=None,
        reshaper: Optional[RowReshaper] = None,
        loader: Optional[StagingLoader] = None,
        merge_engine: Optional[MergeEngine] = None,
        batch_size: Optional[int] = None,
        log_runs: bool = True,
    ):
        """
        Initialize orchestrator.

        Args:
            repository: Media repository (creates default if None)
            reshaper: Row reshaper (creates default if None)
            loader: Staging loader (creates default if None)
            merge_engine: Merge engine (creates default if None)
            batch_size: Staging batch size for the default loader
            log_runs: Record each run in the import_runs table
        """
        if repository is None:
            from ..services.media_repository import MediaRepository
            repository = MediaRepository()

        self.repository = repository
        self.reshaper = reshaper or RowReshaper()
        self.loader = loader or StagingLoader(repository, batch_size=batch_size)
        self.merge_engine = merge_engine or MergeEngine(repository)
        self.log_runs = log_runs

    def import_batch(
        self,
        source: RowSource,
        cancel_token: Optional[CancelToken] = None,
    ) -> RunSummary:
        """
        Import every row of a source.

        Args:
            source: CSV or JSON row source
            cancel_token: Checked between batches and before merge

        Returns:
            RunSummary with rows_processed and staging counters

        Raises:
            IngestionError: input contract violation (nothing started), or
                the run failed and was rolled back
        """
        source.validate()

        with _RUN_LOCK:
            run = ImportRun(
                source_name=source.get_source_name(),
                cancel_token=cancel_token or CancelToken(),
            )
            logger.info(f"Starting import run {run.run_id} from {run.source_name}")
            if self.log_runs:
                self.repository.log_run_start(run.run_id, run.source_name)

            try:
                merged = self._execute(run, source)
            except Exception as e:
                error = self._as_ingestion_error(run, e)
                run.transition(ImportState.FAILED)
                run.error = error
                logger.error(f"Import run {run.run_id} failed: {error}", exc_info=True)
                if self.log_runs:
                    self.repository.log_run_failed(run.run_id, error.category.value, error.message)
                if error is e:
                    raise
                raise error from e

            summary = RunSummary(
                run_id=run.run_id,
                source_name=run.source_name,
                rows_processed=merged.rows_processed,
                rows_staged=run.rows_staged,
                rows_skipped=source.rows_skipped,
                rows_inserted=merged.rows_inserted,
                rows_updated=merged.rows_updated,
                field_errors=merged.field_errors,
                rows_with_errors=merged.rows_with_errors,
                batches=run.batches_inserted,
                duration_seconds=run.elapsed(),
            )
            if self.log_runs:
                self.repository.log_run_complete(summary)

            logger.info(f"Import run {run.run_id} committed: {summary.to_dict()}")
            return summary

    def _execute(self, run: ImportRun, source: RowSource):
        """Truncate, load and merge inside one transaction."""
        with self.repository.transaction() as cursor:
            run.cancel_token.raise_if_cancelled()

            self._enter(run, ImportState.TRUNCATING_STAGING)
            cleared = self.repository.clear_staging(cursor)
            logger.debug(f"Cleared {cleared} staging rows")

            self._enter(run, ImportState.LOADING)
            records = self.reshaper.reshape_all(source.iter_rows())
            self.loader.load(cursor, run, records)
            if source.rows_skipped:
                logger.warning(f"Skipped {source.rows_skipped} malformed rows from {run.source_name}")

            run.cancel_token.raise_if_cancelled()
            self._enter(run, ImportState.MERGING)
            merged = self.merge_engine.merge(cursor, run)
            run.cancel_token.raise_if_cancelled()

        self._enter(run, ImportState.COMMITTED)
        return merged

    def _enter(self, run: ImportRun, state: ImportState) -> None:
        run.transition(state)
        logger.debug(f"Run {run.run_id} -> {state.value}")

    def _as_ingestion_error(self, run: ImportRun, exc: Exception) -> IngestionError:
        """Map a failure to the run's single categorized error."""
        if isinstance(exc, IngestionError):
            return exc
        if isinstance(exc, sqlite3.Error):
            return IngestionError(ErrorCategory.STORE_FAILURE, f"Store error during {run.state.value}: {exc}")
        if run.state is ImportState.LOADING:
            return IngestionError(ErrorCategory.PARSE_FAILURE, f"Could not read input: {exc}")
        return IngestionError(ErrorCategory.STORE_FAILURE, f"Import failed during {run.state.value}: {exc}")

    def preview(self, source: RowSource, limit: int = 10) -> list[dict]:
        """
        Preview reshaped and converted rows without writing.

        Args:
            source: Row source
            limit: Max rows to return

        Returns:
            List of dicts with the staged columns and any field errors
        """
        source.validate()
        results = []
        for record in self.reshaper.reshape_all(source.iter_rows()):
            if len(results) >= limit:
                break
            row = {column: getattr(record, column) for column in record.column_names()}
            outcome = convert_row(row)
            results.append({
                "row_number": record.row_number,
                "external_id": outcome.values["external_id"],
                "title": outcome.values["title"],
                "series_title": outcome.values["series_title"],
                "season_number": outcome.values["season_number"],
                "episode_number": outcome.values["episode_number"],
                "countries": outcome.values["countries"],
                "field_errors": [f"{e.field}: {e.reason}" for e in outcome.errors],
            })
        return results
