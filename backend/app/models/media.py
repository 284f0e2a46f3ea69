"""
Canonical media item, as stored in media_items and returned by the API.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Optional


@dataclass
class MediaItem:
    """A canonical media item, keyed by external_id."""
    external_id: Optional[str]
    guid: Optional[str] = None
    title: Optional[str] = None
    series_title: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    content_type: Optional[str] = None
    availability_state: Optional[str] = None
    countries: Optional[list[str]] = None
    premium_features: Optional[list[str]] = None
    updated_timestamp: Optional[int] = None
    added_timestamp: Optional[int] = None
    provider: Optional[str] = None
    description: Optional[str] = None
    available_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    ratings: Any = None
    youtube_video_ids: Optional[list[str]] = None
    primary_category_name: Optional[str] = None
    primary_category_id: Optional[str] = None
    source_partner: Optional[str] = None
    video_id: Optional[str] = None
    pub_date: Optional[datetime] = None
    content: Any = None
    thumbnails: Any = None
    cbs: Any = None
    ytcp: Any = None
    yt: Any = None
    msn: Any = None
    pl2: Any = None

    # Store bookkeeping, populated on read
    id: Optional[int] = field(default=None, compare=False)
    created_at: Optional[str] = field(default=None, compare=False)
    updated_at: Optional[str] = field(default=None, compare=False)

    @classmethod
    def mapped_columns(cls) -> list[str]:
        """Columns written by the upsert (everything but bookkeeping)."""
        return [f.name for f in fields(cls) if f.name not in ("id", "created_at", "updated_at")]

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        for name in ("available_date", "expiration_date", "pub_date"):
            if data[name] is not None:
                data[name] = data[name].isoformat()
        return data
