"""
Preload window for feed playback.

Keeps the previous / current / next feed items prepared so the player can
switch without waiting on the network. Each position holds at most one slot;
a new window overwrites the old one. Preparations run as background tasks
and report back through mark_ready/mark_failed, which drop results for
slots that have been replaced in the meantime.
"""
import os
import time
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from core.errors import PreparationError
from services.cache import ContentCache

logger = logging.getLogger(__name__)


class SlotPosition(Enum):
    PREVIOUS = -1
    CURRENT = 0
    NEXT = 1

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> "SlotPosition":
        try:
            return cls[label.upper()]
        except KeyError:
            raise ValueError(f"Unknown slot position: {label}") from None


class SlotState(str, Enum):
    EMPTY = "empty"
    PREPARING = "preparing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class FeedItem:
    identifier: str
    url: str
    thumbnail_url: Optional[str] = None


@dataclass
class PreparedMedia:
    """Playable handle for a prepared feed item."""

    identifier: str
    path: str
    size_bytes: int
    prepared_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "path": self.path,
            "size_bytes": self.size_bytes,
            "prepared_at": self.prepared_at,
        }


@dataclass
class PreloadSlot:
    position: SlotPosition
    identifier: str
    state: SlotState = SlotState.PREPARING
    handle: Any = None
    error: Optional[BaseException] = None
    load_date: float = field(default_factory=time.time)

    @property
    def is_preloaded(self) -> bool:
        return self.state == SlotState.READY

    def to_dict(self) -> dict:
        handle = self.handle.to_dict() if hasattr(self.handle, "to_dict") else None
        return {
            "position": self.position.label,
            "identifier": self.identifier,
            "state": self.state.value,
            "is_preloaded": self.is_preloaded,
            "load_date": self.load_date,
            "error": str(self.error) if self.error else None,
            "handle": handle,
        }


class CachePreparer:
    """Prepares feed items by resolving them through a ContentCache."""

    def __init__(self, cache: ContentCache):
        self.cache = cache

    async def __call__(self, item: FeedItem) -> PreparedMedia:
        path = await self.cache.fetch(item.url, item.identifier)
        try:
            size = os.path.getsize(path)
        except FileNotFoundError:
            # Evicted by another fetch before we got here
            raise PreparationError(f"Cached file for {item.identifier} disappeared") from None
        if size == 0:
            raise PreparationError(f"Cached file for {item.identifier} is empty and not playable")
        return PreparedMedia(identifier=item.identifier, path=path, size_bytes=size)


class PreloadWindow:
    """
    Three-slot sliding window of prepared feed items.

    set_window() calls must be serialized by the caller (one per feed
    position change). Replacing a slot does not cancel its in-flight
    preparation; the result is discarded when it arrives.
    """

    def __init__(
        self,
        preparer: Callable[[FeedItem], Awaitable[Any]],
        on_release: Optional[Callable[[Any], None]] = None,
    ):
        self._preparer = preparer
        self._on_release = on_release
        self._slots: Dict[SlotPosition, PreloadSlot] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def set_window(
        self,
        current: Optional[FeedItem],
        previous: Optional[FeedItem] = None,
        next: Optional[FeedItem] = None,
    ) -> List[dict]:
        """Replace all three slots, starting preparation for new identifiers."""
        requested = {
            SlotPosition.PREVIOUS: previous,
            SlotPosition.CURRENT: current,
            SlotPosition.NEXT: next,
        }
        old_slots = self._slots
        ready_handles = {
            slot.identifier: slot.handle
            for slot in old_slots.values()
            if slot.state == SlotState.READY
        }

        new_slots: Dict[SlotPosition, PreloadSlot] = {}
        to_prepare = []
        for position, item in requested.items():
            if item is None:
                continue
            old = old_slots.get(position)
            if old is not None and old.identifier == item.identifier and old.state != SlotState.FAILED:
                new_slots[position] = old
            elif item.identifier in ready_handles:
                new_slots[position] = PreloadSlot(
                    position, item.identifier, state=SlotState.READY, handle=ready_handles[item.identifier]
                )
            else:
                new_slots[position] = PreloadSlot(position, item.identifier)
                to_prepare.append((position, item))

        self._slots = new_slots

        kept_identifiers = {slot.identifier for slot in new_slots.values()}
        released: Set[int] = set()
        for old in old_slots.values():
            if old.handle is None or old.identifier in kept_identifiers or id(old.handle) in released:
                continue
            released.add(id(old.handle))
            self._release(old.handle)

        for position, item in to_prepare:
            task = asyncio.create_task(self._prepare(position, item))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        logger.info(
            "Preload window: "
            + ", ".join(f"{s.position.label}={s.identifier} ({s.state.value})" for s in new_slots.values())
        )
        return self.slots()

    def ready_slot(self, position: SlotPosition) -> Any:
        """Prepared handle for position, or None if not ready. Never starts work."""
        slot = self._slots.get(position)
        if slot is None or slot.state != SlotState.READY:
            return None
        return slot.handle

    def slot(self, position: SlotPosition) -> Optional[PreloadSlot]:
        return self._slots.get(position)

    def slots(self) -> List[dict]:
        result = []
        for position in SlotPosition:
            slot = self._slots.get(position)
            if slot is None:
                result.append({"position": position.label, "identifier": None, "state": SlotState.EMPTY.value,
                               "is_preloaded": False, "load_date": None, "error": None, "handle": None})
            else:
                result.append(slot.to_dict())
        return result

    def mark_ready(self, position: SlotPosition, identifier: str, handle: Any) -> bool:
        """
        Attach a prepared handle to its slot.

        Applied only if the slot still holds identifier and is preparing;
        otherwise the completion is stale and its handle is released.
        """
        slot = self._slots.get(position)
        if slot is None or slot.identifier != identifier or slot.state != SlotState.PREPARING:
            if slot is None or slot.handle is not handle:
                logger.info(f"Discarding stale preparation of {identifier} for {position.label}")
                self._release(handle)
            return False
        slot.handle = handle
        slot.state = SlotState.READY
        logger.info(f"Preloaded {identifier} for {position.label}")
        return True

    def mark_failed(self, position: SlotPosition, identifier: str, error: BaseException) -> bool:
        """Move a preparing slot to failed. The next set_window for it retries."""
        slot = self._slots.get(position)
        if slot is None or slot.identifier != identifier or slot.state != SlotState.PREPARING:
            return False
        slot.state = SlotState.FAILED
        slot.error = error
        return True

    async def _prepare(self, position: SlotPosition, item: FeedItem):
        # Replaced before this task got scheduled
        slot = self._slots.get(position)
        if slot is None or slot.identifier != item.identifier or slot.state != SlotState.PREPARING:
            return

        try:
            handle = await self._preparer(item)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Preload failed for {item.identifier} ({position.label}): {e}")
            self.mark_failed(position, item.identifier, e)
            return
        self.mark_ready(position, item.identifier, handle)

    def _release(self, handle: Any) -> None:
        if handle is None or self._on_release is None:
            return
        try:
            self._on_release(handle)
        except Exception as e:
            logger.warning(f"Error releasing preloaded handle: {e}")

    async def wait_idle(self) -> None:
        """Wait for all in-flight preparations to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel preparations and release every handle."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for slot in self._slots.values():
            self._release(slot.handle)
        self._slots = {}
