"""
Streaming CSV row source for media ingestion.

Parses an uploaded vendor CSV row by row. Header names are trimmed,
a UTF-8 BOM is tolerated, and malformed lines are skipped (and counted)
rather than failing the whole run.
"""

import csv
import io
import logging
from pathlib import PurePath
from typing import IO, Iterator, Optional

from ...config import Config
from ...models.enums import ErrorCategory
from ..protocols import IngestionError, RowSource

logger = logging.getLogger(__name__)

# Vendor rows can carry whole JSON documents in a single cell
csv.field_size_limit(Config.MAX_CSV_FIELD_BYTES)


class CsvRowSource(RowSource):
    """
    Row source over a CSV stream with a header row.

    The stream may be binary (an upload) or text. Rows are produced lazily,
    one per call, so the consumer controls read-ahead.
    """

    def __init__(
        self,
        stream: IO,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
        max_size_bytes: Optional[int] = None,
        encoding: str = "utf-8-sig",
    ):
        """
        Initialize source.

        Args:
            stream: Binary or text stream positioned at the header row
            filename: Original file name, checked for a .csv extension
            content_type: Declared MIME type, checked against the allow list
            size_bytes: Total input size if known, checked against the ceiling
            max_size_bytes: Size ceiling (defaults to Config.max_upload_size_bytes())
            encoding: Text encoding for binary streams
        """
        self.stream = stream
        self.filename = filename
        self.content_type = content_type
        self.size_bytes = size_bytes
        self.max_size_bytes = max_size_bytes if max_size_bytes is not None else Config.max_upload_size_bytes()
        self.encoding = encoding
        self._rows_skipped = 0

    def get_source_name(self) -> str:
        return f"csv:{self.filename}" if self.filename else "csv"

    @property
    def rows_skipped(self) -> int:
        return self._rows_skipped

    def validate(self) -> None:
        """Reject non-CSV uploads and oversized inputs before any work starts."""
        if self.content_type is not None:
            mime = self.content_type.split(";", 1)[0].strip().lower()
            if mime not in Config.ALLOWED_CSV_CONTENT_TYPES:
                raise IngestionError(
                    ErrorCategory.INVALID_INPUT_FORMAT,
                    "Invalid file type. Only CSV files are allowed.",
                )

        if self.filename is not None:
            extension = PurePath(self.filename).suffix.lower()
            if extension not in Config.ALLOWED_CSV_EXTENSIONS:
                raise IngestionError(
                    ErrorCategory.INVALID_INPUT_FORMAT,
                    "Only CSV files are allowed.",
                )

        if self.size_bytes is not None and self.size_bytes > self.max_size_bytes:
            raise IngestionError(
                ErrorCategory.SIZE_EXCEEDED,
                f"File size exceeds {self.max_size_bytes // (1024 * 1024)}MB limit",
            )

    def iter_rows(self) -> Iterator[dict[str, str]]:
        """Iterate over CSV rows as header -> value dicts."""
        text, wrapper = self._open_text()
        try:
            reader = csv.reader(text, strict=True)
            header = self._read_header(reader)
            if header is None:
                return

            while True:
                try:
                    fields = next(reader)
                except StopIteration:
                    break
                except csv.Error as e:
                    self._skip(reader.line_num, str(e))
                    continue

                if not fields:
                    continue
                if len(fields) > len(header):
                    self._skip(reader.line_num, f"expected {len(header)} fields, got {len(fields)}")
                    continue

                yield dict(zip(header, fields))
        finally:
            if wrapper is not None:
                # Leave the caller's stream open
                wrapper.detach()

    def _open_text(self) -> tuple[IO[str], Optional[io.TextIOWrapper]]:
        if isinstance(self.stream, io.TextIOBase):
            return self.stream, None
        wrapper = io.TextIOWrapper(self.stream, encoding=self.encoding, errors="replace", newline="")
        return wrapper, wrapper

    def _read_header(self, reader) -> Optional[list[str]]:
        try:
            header = next(reader)
        except StopIteration:
            return None
        except csv.Error as e:
            raise IngestionError(ErrorCategory.PARSE_FAILURE, f"Unreadable CSV header: {e}") from e

        header = [name.strip() for name in header]
        if not any(header):
            raise IngestionError(ErrorCategory.PARSE_FAILURE, "CSV header row is empty")
        return header

    def _skip(self, line_num: int, reason: str) -> None:
        self._rows_skipped += 1
        logger.warning(f"Skipping malformed CSV line {line_num}: {reason}")
