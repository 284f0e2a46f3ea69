"""
GET /api/items endpoints for the media catalog.

Lists canonical media items with an optional title/series search and
returns single items by external id.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ..config import Config
from ..models.media import MediaItem
from ..models.response import MediaItemListResponse, MediaItemResponse
from ..services.media_repository import MediaRepository, get_media_repository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/items")


def _to_response(item: MediaItem) -> MediaItemResponse:
    return MediaItemResponse(**item.to_dict())


@router.get("", response_model=MediaItemListResponse)
async def list_items(
    search: str = Query(default="", description="Case-insensitive title or series title match"),
    sort_by: str = Query(default=Config.DEFAULT_SORT_COLUMN, alias="sortBy"),
    sort_order: str = Query(default="ASC", alias="sortOrder"),
    repo: MediaRepository = Depends(get_media_repository),
) -> MediaItemListResponse:
    """
    List media items.

    Unknown sort columns fall back to title.
    """
    try:
        items = repo.list_items(search=search, sort_by=sort_by, sort_order=sort_order)
    except Exception as e:
        logger.error(f"Failed to list items: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch media items")

    return MediaItemListResponse(
        total=len(items),
        items=[_to_response(item) for item in items],
    )


@router.get("/{external_id}", response_model=MediaItemResponse)
async def get_item(
    external_id: str,
    repo: MediaRepository = Depends(get_media_repository),
) -> MediaItemResponse:
    """Get one media item by its external id."""
    item = repo.get_by_external_id(external_id)
    if not item:
        raise HTTPException(status_code=404, detail="Media item not found")
    return _to_response(item)
