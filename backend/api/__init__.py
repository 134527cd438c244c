"""
API routes module.
"""
from api.routes.cache import router as cache_router
from api.routes.preload import router as preload_router
from api.routes.videos import router as videos_router

__all__ = ["cache_router", "preload_router", "videos_router"]
