"""
Media catalog ingestion package.

Provides a staging-then-merge pipeline for importing vendor CSV files and
JSON batches into the SQLite catalog in one atomic run.
"""

from .protocols import CancelToken, ImportRun, IngestionError, RowSource, RunSummary, StagingRecord
from .normalizers import CellNormalizer, CellShape, FieldError, FieldResult
from .reshaper import RowReshaper
from .staging import StagingLoader
from .merge import MergeEngine, MergeResult
from .pipeline import ImportOrchestrator

__all__ = [
    "CancelToken",
    "ImportRun",
    "IngestionError",
    "RowSource",
    "RunSummary",
    "StagingRecord",
    "CellNormalizer",
    "CellShape",
    "FieldError",
    "FieldResult",
    "RowReshaper",
    "StagingLoader",
    "MergeEngine",
    "MergeResult",
    "ImportOrchestrator",
]
