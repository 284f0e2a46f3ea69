"""
Cell normalization for media ingestion.

Vendor CSV cells arrive loosely structured: country lists written as JSON
arrays, comma strings or concatenated bracket groups ("[US] [CA]"), rating
blobs as JSON text, YouTube ids as a JSON map of arbitrary keys to ids.
These helpers turn a single cell into a canonical scalar or list.

Every converter that can fail returns a FieldResult. A failure downgrades
that one cell to None and carries a FieldError describing why; it never
raises and never aborts the row.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

LIST_SEPARATOR = ","

INT32_MAX = 2**31 - 1
INT64_MAX = 2**63 - 1
INT32_DIGITS = len(str(INT32_MAX))
INT64_DIGITS = len(str(INT64_MAX))

# Delimited-string cleanup, applied in this order
_CONCAT_ARTIFACT = re.compile(r"\]\s*\[")          # "] [" or "][" from concatenated arrays
_WRAPPING = re.compile(r"^[\[\(\{]+|[\]\)\}]+$")    # outer brackets/braces/parens
_QUOTES = re.compile(r"[\"']")
_ALT_DELIMITERS = re.compile(r"[;|/]+")
_SPACED_DELIMITER = re.compile(r"\s*,\s*")
_WHITESPACE = re.compile(r"\s+")

_NUMERIC = re.compile(r"\d+(\.\d+)?", re.ASCII)
_DIGITS = re.compile(r"\d+", re.ASCII)


class CellShape(str, Enum):
    """Declared shape of a structured cell."""
    LIST_OF_STRINGS = "list_of_strings"
    JSON_DOCUMENT = "json_document"
    FLATTENED_ID_LIST = "flattened_id_list"


@dataclass(frozen=True)
class FieldError:
    """Why a single cell could not be converted."""
    field: str
    raw: str
    reason: str


@dataclass(frozen=True)
class FieldResult(Generic[T]):
    """Outcome of converting one cell: a value, or None plus an error."""
    value: Optional[T] = None
    error: Optional[FieldError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _ok(value: Any) -> FieldResult:
    return FieldResult(value=value)


def _fail(field: str, raw: Any, reason: str) -> FieldResult:
    raw_text = raw if isinstance(raw, str) else stringify(raw)
    # Keep error payloads small; cells can hold whole JSON blobs
    return FieldResult(error=FieldError(field=field, raw=raw_text[:200], reason=reason))


def stringify(value: Any) -> str:
    """Render a cell value as text the way a JSON-aware store would."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, dict, list)):
        return json.dumps(value)
    return str(value)


def is_blank(value: Any) -> bool:
    """True for None and whitespace-only strings."""
    return value is None or (isinstance(value, str) and not value.strip())


def _clean_items(items: list) -> Optional[list[str]]:
    cleaned = [stringify(item).strip() for item in items if item is not None]
    cleaned = [item for item in cleaned if item]
    return cleaned or None


def split_delimited(text: str) -> Optional[list[str]]:
    """Split a loosely delimited string into trimmed, non-empty tokens."""
    s = _CONCAT_ARTIFACT.sub(LIST_SEPARATOR, text)
    s = _WRAPPING.sub("", s)
    s = _QUOTES.sub("", s)
    s = _ALT_DELIMITERS.sub(LIST_SEPARATOR, s)
    s = _SPACED_DELIMITER.sub(LIST_SEPARATOR, s)
    s = _WHITESPACE.sub(" ", s)

    parts = [part.strip() for part in s.split(LIST_SEPARATOR)]
    parts = [part for part in parts if part]
    return parts or None


def parse_list(value: Any) -> Optional[list[str]]:
    """
    Parse a list-of-strings cell.

    Tries a JSON array first; anything else is treated as a delimited
    string. An all-empty result is None, never an empty list.

    Examples:
        >>> parse_list('["US","CA"]')
        ['US', 'CA']
        >>> parse_list("[US] [CA]")
        ['US', 'CA']
        >>> parse_list("US; CA | MX")
        ['US', 'CA', 'MX']
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return _clean_items(list(value))

    text = stringify(value).strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        parsed = None
    if isinstance(parsed, list):
        return _clean_items(parsed)

    return split_delimited(text)


def normalize_list(value: Any) -> Optional[str]:
    """Normalize a list-of-strings cell to its canonical joined form."""
    items = parse_list(value)
    if not items:
        return None
    return LIST_SEPARATOR.join(items)


def parse_json_document(value: Any, field: str = "document") -> FieldResult:
    """Strict JSON parse of a document cell. Already-structured values pass through."""
    if value is None or value == "":
        return _ok(None)
    if not isinstance(value, str):
        return _ok(value)
    try:
        return _ok(json.loads(value))
    except json.JSONDecodeError as e:
        return _fail(field, value, f"invalid JSON: {e.msg}")
    except (ValueError, RecursionError):
        return _fail(field, value, "invalid JSON: document too large or too deeply nested")


def parse_id_list(value: Any, field: str = "ids") -> FieldResult:
    """
    Parse a flattened id list.

    Accepts a map of arbitrary keys to ids ({"9287": "abc"} -> ["abc"]),
    a JSON array, or a delimited string.
    """
    if is_blank(value):
        return _ok(None)
    if isinstance(value, dict):
        return _ok(_clean_items(list(value.values())))
    if isinstance(value, (list, tuple)):
        return _ok(_clean_items(list(value)))

    text = stringify(value).strip()
    if text.startswith("{") or text.startswith("["):
        try:
            parsed = json.loads(text)
        except (ValueError, RecursionError):
            parsed = None
        if isinstance(parsed, dict):
            return _ok(_clean_items(list(parsed.values())))
        if isinstance(parsed, list):
            return _ok(_clean_items(parsed))

    return _ok(split_delimited(text))


def coerce_integer(value: Any, field: str = "number") -> FieldResult:
    """
    Coerce a cell to a 32-bit integer.

    Only plain unsigned decimals are accepted ("3", "3.0"); fractional
    values round half-up. Anything else is a field error.
    """
    if is_blank(value):
        return _ok(None)
    if isinstance(value, bool):
        return _fail(field, value, "boolean is not a number")

    text = stringify(value)
    if not _NUMERIC.fullmatch(text):
        return _fail(field, value, "not a number")

    if len(text.split(".", 1)[0].lstrip("0")) > INT32_DIGITS:
        return _fail(field, value, "integer out of range")
    try:
        number = int(Decimal(text).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return _fail(field, value, "integer out of range")
    if number > INT32_MAX:
        return _fail(field, value, "integer out of range")
    return _ok(number)


def coerce_epoch_millis(value: Any, field: str = "timestamp") -> FieldResult:
    """Coerce a millisecond-epoch cell; digits only."""
    if is_blank(value):
        return _ok(None)
    if isinstance(value, bool):
        return _fail(field, value, "boolean is not a timestamp")

    text = stringify(value)
    if not _DIGITS.fullmatch(text):
        return _fail(field, value, "epoch millis must be digits only")

    if len(text.lstrip("0")) > INT64_DIGITS:
        return _fail(field, value, "epoch millis out of range")
    millis = int(text)
    if millis > INT64_MAX:
        return _fail(field, value, "epoch millis out of range")
    return _ok(millis)


def coerce_timestamp(value: Any, field: str = "date") -> FieldResult:
    """
    Coerce an ISO-8601 (or RFC 2822 feed-style) date/time cell.

    Aware values are converted to UTC; the result is always naive.
    """
    if is_blank(value):
        return _ok(None)
    if not isinstance(value, str):
        return _fail(field, value, "timestamp must be text")

    text = value.strip()
    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError, OverflowError):
            parsed = None

    if parsed is None:
        return _fail(field, value, "unrecognized date format")

    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            return _fail(field, value, "date out of range")
    return _ok(parsed)


class CellNormalizer:
    """
    Normalizes a raw cell according to its declared shape.

    Shapes:
    - list_of_strings: canonical joined list ("US,CA") or None
    - json_document: parsed document or None
    - flattened_id_list: list of id strings or None
    """

    def normalize(self, value: Any, shape: CellShape, field: str = "cell") -> FieldResult:
        """Normalize one cell. Never raises for malformed input."""
        if shape is CellShape.LIST_OF_STRINGS:
            return _ok(normalize_list(value))
        if shape is CellShape.JSON_DOCUMENT:
            return parse_json_document(value, field)
        if shape is CellShape.FLATTENED_ID_LIST:
            return parse_id_list(value, field)
        raise ValueError(f"Unknown cell shape: {shape}")
