"""
Feed Cache Backend - Main Application

This is the entry point for the FastAPI application.
Logic lives in:
- core/: Configuration, errors and path safety
- services/: Content cache, remote fetch, preload window, feed catalog
- api/routes/: REST API endpoints
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import (
    ALLOWED_ORIGINS,
    VIDEO_CACHE_DIR, THUMBNAIL_CACHE_DIR,
    MAX_CACHE_SIZE_BYTES, MAX_THUMBNAIL_CACHE_SIZE_BYTES, CACHE_CLEANUP_TARGET_RATIO,
    VIDEO_FILE_EXTENSION, THUMBNAIL_FILE_EXTENSION,
    DOWNLOAD_MAX_ATTEMPTS,
)
from services.cache import ContentCache
from services.database import init_database
from services.fetcher import HttpDownloader, RetryPolicy
from services.preloader import PreloadWindow, CachePreparer
from api.routes.cache import router as cache_router
from api.routes.preload import router as preload_router
from api.routes.videos import router as videos_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ============================================================================
# Application Lifecycle
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - build caches and the preload window, tear them down."""
    init_database()

    downloader = HttpDownloader()
    retry_policy = RetryPolicy(max_attempts=DOWNLOAD_MAX_ATTEMPTS) if DOWNLOAD_MAX_ATTEMPTS > 1 else None

    video_cache = ContentCache(
        VIDEO_CACHE_DIR,
        max_size_bytes=MAX_CACHE_SIZE_BYTES,
        target_ratio=CACHE_CLEANUP_TARGET_RATIO,
        file_extension=VIDEO_FILE_EXTENSION,
        downloader=downloader,
        retry_policy=retry_policy,
    )
    thumbnail_cache = ContentCache(
        THUMBNAIL_CACHE_DIR,
        max_size_bytes=MAX_THUMBNAIL_CACHE_SIZE_BYTES,
        target_ratio=CACHE_CLEANUP_TARGET_RATIO,
        file_extension=THUMBNAIL_FILE_EXTENSION,
        downloader=downloader,
        retry_policy=retry_policy,
    )
    await video_cache.initialize()
    await thumbnail_cache.initialize()

    app.state.video_cache = video_cache
    app.state.thumbnail_cache = thumbnail_cache
    app.state.preload_window = PreloadWindow(CachePreparer(video_cache))
    logger.info("Started feed cache: video cache, thumbnail cache, preload window")
    yield

    await app.state.preload_window.aclose()
    await downloader.aclose()
    logger.info("Preload window and HTTP client shut down cleanly")


# ============================================================================
# App Initialization
# ============================================================================

app = FastAPI(title="Feed Cache Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True if ALLOWED_ORIGINS != ["*"] else False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(cache_router)
app.include_router(videos_router)
app.include_router(preload_router)


@app.get("/")
def read_root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Feed Cache Backend"}


# ============================================================================
# Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
