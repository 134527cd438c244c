"""
Preload window API routes.

Feed position changes arrive here one at a time; the window is driven by
catalog identifiers.
"""
import logging
from typing import Optional, Dict, Any
from fastapi import APIRouter, Request, HTTPException
import pydantic

from services.database import get_video, get_feed_neighbors
from services.preloader import FeedItem, SlotPosition

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/preload", tags=["preload"])


class WindowRequest(pydantic.BaseModel):
    current: str
    previous: Optional[str] = None
    next: Optional[str] = None


class AdvanceRequest(pydantic.BaseModel):
    current: str


def _to_feed_item(video: Dict[str, Any]) -> FeedItem:
    return FeedItem(identifier=video["id"], url=video["video_url"], thumbnail_url=video.get("thumbnail_url"))


async def _resolve(video_id: Optional[str]) -> Optional[FeedItem]:
    if video_id is None:
        return None
    video = await get_video(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")
    return _to_feed_item(video)


@router.post("/window")
async def set_window(request: Request, body: WindowRequest):
    """Replace the preload window with explicit previous/current/next videos."""
    current = await _resolve(body.current)
    previous = await _resolve(body.previous)
    next_item = await _resolve(body.next)

    slots = request.app.state.preload_window.set_window(current, previous=previous, next=next_item)
    return {"status": "ok", "slots": slots}


@router.post("/advance")
async def advance(request: Request, body: AdvanceRequest):
    """Move the window to a feed video, preloading its feed neighbors."""
    current = await _resolve(body.current)
    previous, next_video = await get_feed_neighbors(body.current)

    slots = request.app.state.preload_window.set_window(
        current,
        previous=_to_feed_item(previous) if previous else None,
        next=_to_feed_item(next_video) if next_video else None,
    )
    return {"status": "ok", "slots": slots}


@router.get("/window")
async def get_window(request: Request):
    """Returns the three slots and their preparation state."""
    window = request.app.state.preload_window
    return {"slots": window.slots(), "in_flight": window.in_flight}


@router.get("/{position}")
async def get_ready_slot(request: Request, position: str):
    """Returns the prepared handle for a position, 404 until it is ready."""
    try:
        slot_position = SlotPosition.from_label(position)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    handle = request.app.state.preload_window.ready_slot(slot_position)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"No prepared video for {position}")
    return handle.to_dict()
