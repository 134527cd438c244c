"""
Content cache API routes.
"""
import os
import logging
from fastapi import APIRouter, Request, HTTPException
from starlette.responses import FileResponse
import pydantic

from api.errors import http_error_for
from core.errors import CacheError
from core.security import validate_remote_url

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["cache"])


MAX_THUMBNAIL_UPLOAD_BYTES = 5 * 1024 * 1024  # 5MB limit


class FetchRequest(pydantic.BaseModel):
    url: str
    identifier: str
    refresh: bool = False


@router.get("/cache/stats")
async def cache_stats(request: Request):
    """Debug snapshot of the video and thumbnail caches."""
    try:
        return {
            "videos": await request.app.state.video_cache.debug_snapshot(),
            "thumbnails": await request.app.state.thumbnail_cache.debug_snapshot(),
        }
    except CacheError as e:
        raise http_error_for(e)


@router.post("/cache/fetch")
async def fetch_video(request: Request, body: FetchRequest):
    """
    Resolve a remote video to a cached local file, downloading on a miss.
    """
    try:
        validate_remote_url(body.url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    cache = request.app.state.video_cache
    try:
        path = await cache.fetch(body.url, body.identifier, refresh=body.refresh)
    except CacheError as e:
        logger.warning(f"Fetch failed for {body.identifier}: {e}")
        raise http_error_for(e)

    try:
        size = os.path.getsize(path)
    except FileNotFoundError:
        size = 0
    return {"status": "ok", "identifier": body.identifier, "path": path, "size_bytes": size}


@router.get("/cache/videos/{identifier}")
async def get_cached_video(request: Request, identifier: str):
    """Serve a cached video. Never triggers a download."""
    try:
        path = await request.app.state.video_cache.cached_path(identifier)
    except CacheError as e:
        raise http_error_for(e)
    if path is None:
        raise HTTPException(status_code=404, detail="Video not cached")
    return FileResponse(path, media_type="video/mp4")


@router.delete("/cache")
async def clear_cache(request: Request):
    """Delete every cached video and thumbnail. Partial failures are reported."""
    videos = await request.app.state.video_cache.clear()
    thumbnails = await request.app.state.thumbnail_cache.clear()
    return {
        "status": "ok" if videos.ok and thumbnails.ok else "partial",
        "videos": {"removed": videos.removed, "failures": [list(f) for f in videos.failures]},
        "thumbnails": {"removed": thumbnails.removed, "failures": [list(f) for f in thumbnails.failures]},
    }


@router.put("/thumbnails/{identifier}")
async def put_thumbnail(request: Request, identifier: str, replace: bool = False):
    """Store a JPEG thumbnail sent as the raw request body."""
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty content")
    if len(data) > MAX_THUMBNAIL_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Thumbnail exceeds 5MB limit")

    try:
        path = await request.app.state.thumbnail_cache.store(identifier, data, replace=replace)
    except CacheError as e:
        raise http_error_for(e)
    return {"status": "ok", "identifier": identifier, "path": path}


@router.get("/thumbnails/{identifier}")
async def get_thumbnail(request: Request, identifier: str):
    """Serve a cached thumbnail."""
    try:
        path = await request.app.state.thumbnail_cache.cached_path(identifier)
    except CacheError as e:
        raise http_error_for(e)
    if path is None:
        raise HTTPException(status_code=404, detail="Thumbnail not cached")
    return FileResponse(path, media_type="image/jpeg")
