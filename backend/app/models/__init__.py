from .enums import (
    ErrorCategory,
    ImportState,
    RunStatus,
)
from .media import MediaItem
from .response import (
    ImportResponse,
    ImportErrorDetail,
    ImportRunResponse,
    MediaItemResponse,
    MediaItemListResponse,
)

__all__ = [
    "ErrorCategory",
    "ImportState",
    "RunStatus",
    "MediaItem",
    "ImportResponse",
    "ImportErrorDetail",
    "ImportRunResponse",
    "MediaItemResponse",
    "MediaItemListResponse",
]
