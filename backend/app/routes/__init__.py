from .imports import router as imports_router
from .items import router as items_router

__all__ = ["imports_router", "items_router"]
