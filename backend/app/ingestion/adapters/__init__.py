"""
Row sources for media ingestion.

Each source reads one input format and yields flat string-keyed rows.
"""

from .csv_adapter import CsvRowSource
from .json_adapter import JsonRowSource

__all__ = ["CsvRowSource", "JsonRowSource"]
