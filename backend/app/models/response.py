"""
Pydantic models for the media catalog API responses.

Import contract:
{
  "success": true,
  "imported": 1234,
  "run_id": "string",
  ...run counters
}

Failures return {"detail": {"error": "string", "category": "string"}}
with a status code chosen by category.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ImportResponse(BaseModel):
    """Response from a committed import run."""
    success: bool = True
    imported: int = Field(..., description="Rows processed by the merge step")
    run_id: str
    source_name: str
    rows_staged: int = 0
    rows_skipped: int = Field(0, description="Malformed CSV lines skipped")
    rows_inserted: int = 0
    rows_updated: int = 0
    field_errors: int = Field(0, description="Cells downgraded to null")
    rows_with_errors: int = Field(0, description="Rows with at least one cell downgraded")
    batches: int = 0
    duration_seconds: float = 0.0


class ImportErrorDetail(BaseModel):
    """Detail payload for a failed import."""
    error: str
    category: str


class ImportRunResponse(BaseModel):
    """One entry of the import run log."""
    run_id: str
    source_name: str
    status: str
    rows_staged: int = 0
    rows_processed: int = 0
    rows_skipped: int = 0
    field_errors: int = 0
    error_category: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


class MediaItemResponse(BaseModel):
    """A canonical media item."""
    id: Optional[int] = None
    external_id: Optional[str] = None
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
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MediaItemListResponse(BaseModel):
    """Response from GET /api/items."""
    total: int
    items: list[MediaItemResponse] = Field(default_factory=list)
