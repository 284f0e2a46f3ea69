from .media_repository import MediaRepository, get_media_repository

__all__ = [
    "MediaRepository",
    "get_media_repository",
]
