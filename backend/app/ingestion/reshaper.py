"""
Row reshaping for media ingestion.

Turns one flat input record into a StagingRecord. Keys come in three forms:
- array paths:  content[2].width      -> ordered list of objects
- namespaces:   cbs$SeriesTitle       -> per-vendor bucket {"SeriesTitle": ...}
- plain names:  title                 -> passed through

Classification is driven by KEY_RULES, and promotion of vendor fields to
first-class staging columns by PROMOTIONS; both are plain data tables so
each rule can be tested on its own.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Optional

from .normalizers import CellNormalizer, CellShape, is_blank, stringify
from .protocols import StagingRecord

# Array indexes above this are treated as plain keys instead of growing a huge list
MAX_ARRAY_INDEX = 1000

# A plain value displaced by a same-named array or bucket is kept under "<name>#value"
SHADOWED_SUFFIX = "#value"


class KeyKind(str, Enum):
    ARRAY_PATH = "array_path"
    NAMESPACE = "namespace"
    PLAIN = "plain"


@dataclass(frozen=True)
class KeyMatch:
    """Classification of one input key."""
    kind: KeyKind
    group: str
    name: str
    index: Optional[int] = None


@dataclass(frozen=True)
class KeyRule:
    """A (pattern, extractor) pair; the first matching rule wins."""
    kind: KeyKind
    pattern: re.Pattern
    extractor: Callable[[re.Match], Optional[KeyMatch]]


def _array_path(match: re.Match) -> Optional[KeyMatch]:
    index = int(match.group(2))
    if index > MAX_ARRAY_INDEX:
        return None
    return KeyMatch(KeyKind.ARRAY_PATH, group=match.group(1), name=match.group(3), index=index)


def _namespace(match: re.Match) -> Optional[KeyMatch]:
    return KeyMatch(KeyKind.NAMESPACE, group=match.group(1), name=match.group(2))


KEY_RULES: tuple[KeyRule, ...] = (
    KeyRule(KeyKind.ARRAY_PATH, re.compile(r"^([A-Za-z_]\w*)\[(\d+)\]\.(.+)$"), _array_path),
    KeyRule(KeyKind.NAMESPACE, re.compile(r"^([A-Za-z_]\w*)\$(.+)$"), _namespace),
)


def classify_key(key: str, rules: tuple[KeyRule, ...] = KEY_RULES) -> KeyMatch:
    """Classify an input key using the first matching rule, defaulting to plain."""
    for rule in rules:
        match = rule.pattern.match(key)
        if match:
            result = rule.extractor(match)
            if result is not None:
                return result
    return KeyMatch(KeyKind.PLAIN, group=key, name=key)


@dataclass(frozen=True)
class FieldAlias:
    """
    Promotion of input keys to a staging column.

    keys are in precedence order: the first key holding a non-blank value
    wins, so vendor aliases are listed before the plain column.
    """
    column: str
    keys: tuple[str, ...]
    is_list: bool = False


PROMOTIONS: tuple[FieldAlias, ...] = (
    FieldAlias("id", ("id",)),
    FieldAlias("guid", ("guid",)),
    FieldAlias("title", ("title",)),
    FieldAlias("series_title", ("cbs$SeriesTitle", "series_title")),
    FieldAlias("season_number", ("cbs$SeasonNumber", "season_number")),
    FieldAlias("episode_number", ("cbs$EpisodeNumber", "episode_number")),
    FieldAlias("content_type", ("cbs$contentType", "content_type")),
    FieldAlias("availability_state", ("availabilityState", "availability_state")),
    FieldAlias("countries", ("countries",), is_list=True),
    FieldAlias("premium_features", ("cbs$premiumFeatures", "premium_features"), is_list=True),
    FieldAlias("updated", ("updated",)),
    FieldAlias("added", ("added",)),
    FieldAlias("provider", ("provider",)),
    FieldAlias("description", ("description",)),
    FieldAlias("available_date", ("availableDate", "available_date")),
    FieldAlias("expiration_date", ("expirationDate", "expiration_date")),
    FieldAlias("ratings", ("ratings",)),
    FieldAlias("pub_date", ("pubDate", "pub_date")),
    FieldAlias("primary_category_name", ("cbs$PrimaryCategoryName", "primary_category_name")),
    FieldAlias("primary_category_id", ("cbs$PrimaryCategory", "primary_category_id")),
    FieldAlias("source_partner", ("cbs$SourcePartner", "source_partner")),
    FieldAlias("video_id", ("cbs$VideoID", "video_id")),
    FieldAlias("youtube_video_ids", ("ytcp$youTubeVideoIds", "youtube_video_ids")),
)


def _is_structured(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _is_empty_structure(value: Any) -> bool:
    """True when every leaf of value is blank."""
    if isinstance(value, dict):
        return all(_is_empty_structure(v) for v in value.values())
    if isinstance(value, list):
        return all(_is_empty_structure(v) for v in value)
    return is_blank(value)


def _merge_structures(explicit: Any, flattened: Any) -> Any:
    """
    Combine a pre-nested value with its flattened reconstruction.

    Flattened leaves override explicit ones unless they are blank, so an
    empty reconstruction never wipes out explicit data.
    """
    if isinstance(explicit, dict) and isinstance(flattened, dict):
        merged = dict(explicit)
        for key, value in flattened.items():
            if key not in merged:
                merged[key] = value
            elif not _is_empty_structure(value):
                merged[key] = _merge_structures(merged[key], value)
        return merged
    if isinstance(explicit, list) and isinstance(flattened, list):
        length = max(len(explicit), len(flattened))
        merged = []
        for i in range(length):
            left = explicit[i] if i < len(explicit) else None
            right = flattened[i] if i < len(flattened) else None
            if left is None:
                merged.append(right)
            elif right is None:
                merged.append(left)
            else:
                merged.append(_merge_structures(left, right))
        return merged
    if _is_empty_structure(flattened) and explicit is not None:
        return explicit
    return flattened


def _to_text(value: Any) -> Optional[str]:
    """Render a promoted value for an untyped staging column."""
    if value is None:
        return None
    return stringify(value)


class RowReshaper:
    """
    Reshapes flat input rows into staging records.

    Stateless apart from its rule tables; safe to share across runs.
    """

    def __init__(
        self,
        key_rules: tuple[KeyRule, ...] = KEY_RULES,
        promotions: tuple[FieldAlias, ...] = PROMOTIONS,
        normalizer: Optional[CellNormalizer] = None,
    ):
        self.key_rules = key_rules
        self.promotions = promotions
        self.normalizer = normalizer or CellNormalizer()

    def reshape(self, row: dict[str, Any], row_number: Optional[int] = None) -> StagingRecord:
        """
        Reshape one input row.

        Args:
            row: Flat key -> value mapping (CSV row or JSON object)
            row_number: Source position, for error reporting

        Returns:
            StagingRecord with promoted columns and the residual document
        """
        columns = {
            alias.column: self._promote(row, alias)
            for alias in self.promotions
        }
        residual = self.build_residual(row)
        return StagingRecord(**columns, raw_row=residual, row_number=row_number)

    def reshape_all(self, rows: Iterable[dict[str, Any]]) -> Iterator[StagingRecord]:
        """Lazily reshape a stream of rows."""
        for row_number, row in enumerate(rows, start=1):
            yield self.reshape(row, row_number)

    def classify(self, key: str) -> KeyMatch:
        return classify_key(key, self.key_rules)

    def build_residual(self, row: dict[str, Any]) -> dict[str, Any]:
        """
        Build the residual document for a row.

        Plain keys pass through unchanged (including pre-nested content,
        thumbnails and namespace objects from JSON input). Array-path keys
        are assembled into ordered lists with None in index gaps, and
        namespaced keys into per-prefix buckets. A plain value that a
        group of the same name would replace moves to "<name>#value".
        """
        residual: dict[str, Any] = {}
        arrays: dict[str, dict[int, dict[str, Any]]] = {}
        buckets: dict[str, dict[str, Any]] = {}

        for key, value in row.items():
            match = self.classify(key)
            if match.kind is KeyKind.ARRAY_PATH:
                arrays.setdefault(match.group, {}).setdefault(match.index, {})[match.name] = value
            elif match.kind is KeyKind.NAMESPACE:
                buckets.setdefault(match.group, {})[match.name] = value
            else:
                residual[key] = value

        for group, entries in arrays.items():
            assembled = [entries.get(i) for i in range(max(entries) + 1)]
            self._combine(residual, group, assembled)

        for group, bucket in buckets.items():
            self._combine(residual, group, bucket)

        return residual

    def _combine(self, residual: dict[str, Any], group: str, flattened: Any) -> None:
        """Place a reassembled group into the residual without losing the plain value it replaces."""
        explicit = residual.get(group)
        if _is_structured(explicit) and type(explicit) is type(flattened):
            residual[group] = _merge_structures(explicit, flattened)
            return
        if _is_empty_structure(explicit):
            residual[group] = flattened
            return
        if _is_empty_structure(flattened):
            return

        key = group + SHADOWED_SUFFIX
        while key in residual:
            key += SHADOWED_SUFFIX
        residual[key] = explicit
        residual[group] = flattened

    def _lookup(self, row: dict[str, Any], key: str) -> Any:
        """Find a non-blank value for key, looking inside pre-nested buckets for ns$name."""
        value = row.get(key)
        if not is_blank(value):
            return value

        if "$" in key:
            namespace, name = key.split("$", 1)
            nested = row.get(namespace)
            if isinstance(nested, dict) and not is_blank(nested.get(name)):
                return nested[name]
        return None

    def _promote(self, row: dict[str, Any], alias: FieldAlias) -> Optional[str]:
        for key in alias.keys:
            value = self._lookup(row, key)
            if value is not None:
                if alias.is_list:
                    return self.normalizer.normalize(value, CellShape.LIST_OF_STRINGS, alias.column).value
                return _to_text(value)
        return None
