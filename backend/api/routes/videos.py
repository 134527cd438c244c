"""
Feed catalog API routes.
"""
import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Query
import pydantic

from core.config import FEED_PAGE_SIZE
from core.errors import InvalidIdentifier
from core.security import sanitize_identifier, validate_remote_url
from services.database import register_video, list_videos, get_video, delete_video

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["videos"])


class VideoIn(pydantic.BaseModel):
    id: str
    video_url: str
    user_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_at: Optional[float] = None


@router.post("/videos")
async def create_video(video: VideoIn):
    """Register a video in the feed."""
    try:
        sanitize_identifier(video.id)
        validate_remote_url(video.video_url)
        if video.thumbnail_url:
            validate_remote_url(video.thumbnail_url)
    except (InvalidIdentifier, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    row = await register_video(
        video.id,
        video.video_url,
        user_id=video.user_id,
        thumbnail_url=video.thumbnail_url,
        created_at=video.created_at,
    )
    logger.info(f"Registered feed video: {video.id}")
    return {"status": "ok", "video": row}


@router.get("/videos")
async def get_feed(
    before: Optional[float] = Query(None, description="created_at of the last video of the previous page"),
    limit: int = Query(FEED_PAGE_SIZE, ge=1, le=100),
):
    """Returns a page of the feed, newest first."""
    return await list_videos(before=before, limit=limit)


@router.get("/videos/{video_id}")
async def read_video(video_id: str):
    video = await get_video(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


@router.delete("/videos/{video_id}")
async def remove_video(video_id: str):
    """Remove a video from the feed. Its cached file stays under cache eviction."""
    if not await delete_video(video_id):
        raise HTTPException(status_code=404, detail="Video not found")
    return {"status": "ok", "message": f"Deleted {video_id}"}
