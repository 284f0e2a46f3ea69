"""
JSON row source for media ingestion.

Accepts the body shape {"items": [{...}, ...]}. Items may already carry
nested structure (content arrays, namespace objects); they are yielded
as-is and the reshaper passes that structure through.
"""

from typing import Any, Iterator, Optional

from ...config import Config
from ...models.enums import ErrorCategory
from ..protocols import IngestionError, RowSource


class JsonRowSource(RowSource):
    """Row source over an in-memory list of JSON objects."""

    def __init__(
        self,
        items: Any,
        size_bytes: Optional[int] = None,
        max_size_bytes: int = Config.MAX_JSON_BODY_BYTES,
        max_items: int = Config.MAX_JSON_ITEMS,
    ):
        """
        Initialize source.

        Args:
            items: Value of the body's "items" key
            size_bytes: Size of the raw request body, if known
            max_size_bytes: Body size ceiling
            max_items: Item count ceiling
        """
        self.items = items
        self.size_bytes = size_bytes
        self.max_size_bytes = max_size_bytes
        self.max_items = max_items

    @classmethod
    def from_payload(cls, payload: Any, size_bytes: Optional[int] = None, **kwargs) -> "JsonRowSource":
        """Build a source from a decoded request body."""
        items = payload.get("items") if isinstance(payload, dict) else None
        return cls(items, size_bytes=size_bytes, **kwargs)

    def get_source_name(self) -> str:
        return "json"

    @property
    def rows_skipped(self) -> int:
        return 0

    def validate(self) -> None:
        if self.size_bytes is not None and self.size_bytes > self.max_size_bytes:
            raise IngestionError(
                ErrorCategory.SIZE_EXCEEDED,
                f"Request body exceeds {self.max_size_bytes // (1024 * 1024)}MB limit",
            )

        if not isinstance(self.items, list) or not self.items:
            raise IngestionError(
                ErrorCategory.INVALID_INPUT_FORMAT,
                'Request body must include a non-empty array "items"',
            )

        if len(self.items) > self.max_items:
            raise IngestionError(
                ErrorCategory.SIZE_EXCEEDED,
                f"Too many items: {len(self.items)} (max {self.max_items})",
            )

        for position, item in enumerate(self.items):
            if not isinstance(item, dict):
                raise IngestionError(
                    ErrorCategory.INVALID_INPUT_FORMAT,
                    f"items[{position}] must be an object",
                )

    def iter_rows(self) -> Iterator[dict[str, Any]]:
        yield from self.items
