"""
Staging loader: buffers reshaped records and writes them in fixed-size batches.

Records are pulled from the upstream iterator one at a time. When the buffer
reaches the batch size it is flushed with a single bulk insert before the next
record is requested, so at most one batch insert is ever in flight and the
producer never reads ahead of the store.
"""

import logging
import sqlite3
from typing import Iterable, Optional

from ..config import Config
from .protocols import ImportRun, StagingRecord

logger = logging.getLogger(__name__)


class StagingLoader:
    """Writes staging records for a run in batches of batch_size."""

    def __init__(
        self,
        repository,
        batch_size: Optional[int] = None,
        progress_every: int = Config.PROGRESS_LOG_EVERY_BATCHES,
    ):
        """
        Initialize loader.

        Args:
            repository: MediaRepository (anything with insert_staging_batch)
            batch_size: Records per bulk insert (default Config.staging_batch_size())
            progress_every: Log progress every N batches
        """
        self.repository = repository
        self.batch_size = batch_size or Config.staging_batch_size()
        self.progress_every = progress_every

    def load(
        self,
        cursor: sqlite3.Cursor,
        run: ImportRun,
        records: Iterable[StagingRecord],
    ) -> int:
        """
        Stage all records for a run.

        Args:
            cursor: Cursor of the run's open transaction
            run: The run being loaded; counters are updated in place
            records: Lazily produced staging records

        Returns:
            Number of records staged

        Raises:
            IngestionError: cancelled, checked between batches
        """
        batch: list[StagingRecord] = []

        for record in records:
            run.rows_read += 1
            batch.append(record)
            if len(batch) >= self.batch_size:
                self._flush(cursor, run, batch)
                batch = []
                run.cancel_token.raise_if_cancelled()

        if batch:
            self._flush(cursor, run, batch)

        logger.info(
            f"Staged {run.rows_staged} rows in {run.batches_inserted} batches "
            f"for run {run.run_id}"
        )
        return run.rows_staged

    def _flush(self, cursor: sqlite3.Cursor, run: ImportRun, batch: list[StagingRecord]) -> None:
        inserted = self.repository.insert_staging_batch(cursor, run.run_id, batch)
        run.rows_staged += inserted
        run.batches_inserted += 1

        if run.batches_inserted % self.progress_every == 0:
            rate = run.rows_staged / max(run.elapsed(), 0.001)
            logger.info(f"Staged {run.rows_staged} rows ({rate:.0f} rows/sec)")
