"""
Tests for the three-slot preload window.
"""
import asyncio
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import PreparationError
from services.cache import ContentCache
from services.preloader import (
    CachePreparer,
    FeedItem,
    PreloadWindow,
    PreparedMedia,
    SlotPosition,
    SlotState,
)

PREVIOUS, CURRENT, NEXT = SlotPosition.PREVIOUS, SlotPosition.CURRENT, SlotPosition.NEXT


def item(identifier):
    return FeedItem(identifier=identifier, url=f"https://media.example.com/{identifier}.mp4")


class GatedPreparer:
    """Preparer whose completions the test releases one identifier at a time."""

    def __init__(self):
        self.gates = {}
        self.calls = []
        self.failing = set()

    def gate(self, identifier):
        return self.gates.setdefault(identifier, asyncio.Event())

    def open(self, *identifiers):
        for identifier in identifiers:
            self.gate(identifier).set()

    async def __call__(self, feed_item):
        self.calls.append(feed_item.identifier)
        await self.gate(feed_item.identifier).wait()
        if feed_item.identifier in self.failing:
            raise PreparationError(f"cannot play {feed_item.identifier}")
        return PreparedMedia(identifier=feed_item.identifier, path=f"/cache/{feed_item.identifier}.mp4",
                             size_bytes=1)


@pytest.fixture
def preparer():
    return GatedPreparer()


@pytest.fixture
def released():
    return []


@pytest.fixture
def window(preparer, released):
    return PreloadWindow(preparer, on_release=lambda handle: released.append(handle.identifier))


class TestSlotLifecycle:
    """empty -> preparing -> ready / failed."""

    @pytest.mark.asyncio
    async def test_slots_become_ready(self, window, preparer):
        slots = window.set_window(item("A"), previous=item("B"), next=item("C"))

        assert [s["state"] for s in slots] == ["preparing", "preparing", "preparing"]
        assert window.ready_slot(CURRENT) is None

        preparer.open("A", "B", "C")
        await window.wait_idle()

        assert window.ready_slot(CURRENT).identifier == "A"
        assert window.ready_slot(PREVIOUS).identifier == "B"
        assert window.ready_slot(NEXT).identifier == "C"
        assert window.slot(CURRENT).is_preloaded

    @pytest.mark.asyncio
    async def test_absent_positions_are_empty(self, window, preparer):
        slots = window.set_window(item("A"))

        assert [s["state"] for s in slots] == ["empty", "preparing", "empty"]
        assert window.slot(NEXT) is None
        preparer.open("A")
        await window.wait_idle()

    @pytest.mark.asyncio
    async def test_ready_slot_never_starts_work(self, window, preparer):
        assert window.ready_slot(CURRENT) is None
        assert preparer.calls == []

    @pytest.mark.asyncio
    async def test_failure_moves_slot_to_failed(self, window, preparer):
        preparer.failing.add("A")
        window.set_window(item("A"))
        preparer.open("A")
        await window.wait_idle()

        slot = window.slot(CURRENT)
        assert slot.state == SlotState.FAILED
        assert isinstance(slot.error, PreparationError)
        assert window.ready_slot(CURRENT) is None

    @pytest.mark.asyncio
    async def test_set_window_retries_failed_slot(self, window, preparer):
        preparer.failing.add("A")
        window.set_window(item("A"))
        preparer.open("A")
        await window.wait_idle()

        preparer.failing.clear()
        window.set_window(item("A"))
        await window.wait_idle()

        assert preparer.calls == ["A", "A"]
        assert window.ready_slot(CURRENT).identifier == "A"

    @pytest.mark.asyncio
    async def test_same_identifier_is_not_prepared_twice(self, window, preparer):
        window.set_window(item("A"))
        await asyncio.sleep(0)
        window.set_window(item("A"))
        preparer.open("A")
        await window.wait_idle()

        assert preparer.calls == ["A"]


class TestStaleCompletions:
    """Completions for replaced slots are discarded."""

    @pytest.mark.asyncio
    async def test_overwritten_window_discards_stale_results(self, window, preparer, released):
        window.set_window(item("A"), previous=item("B"), next=item("C"))
        await asyncio.sleep(0)  # let A, B and C start preparing
        window.set_window(item("D"), previous=item("A"), next=item("E"))

        preparer.open("A", "B", "C", "D", "E")
        await window.wait_idle()

        assert window.ready_slot(PREVIOUS).identifier == "A"
        assert window.ready_slot(CURRENT).identifier == "D"
        assert window.ready_slot(NEXT).identifier == "E"
        # Stale B, C and the stale A for the current position were torn down
        assert sorted(released) == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_mark_ready_checks_identifier(self, window, preparer):
        window.set_window(item("A"))
        stale = PreparedMedia(identifier="B", path="/cache/B.mp4", size_bytes=1)

        assert window.mark_ready(CURRENT, "B", stale) is False
        assert window.slot(CURRENT).state == SlotState.PREPARING
        preparer.open("A")
        await window.wait_idle()

    @pytest.mark.asyncio
    async def test_mark_ready_is_idempotent(self, window, preparer, released):
        window.set_window(item("A"))
        preparer.open("A")
        await window.wait_idle()
        handle = window.ready_slot(CURRENT)

        assert window.mark_ready(CURRENT, "A", handle) is False
        assert window.ready_slot(CURRENT) is handle
        assert released == []

    @pytest.mark.asyncio
    async def test_replaced_before_start_is_never_prepared(self, window, preparer):
        window.set_window(item("A"))
        window.set_window(item("B"))
        preparer.open("A", "B")
        await window.wait_idle()

        assert preparer.calls == ["B"]

    @pytest.mark.asyncio
    async def test_mark_failed_ignores_replaced_slot(self, window, preparer):
        window.set_window(item("A"))
        assert window.mark_failed(CURRENT, "Z", RuntimeError("boom")) is False
        assert window.slot(CURRENT).state == SlotState.PREPARING
        preparer.open("A")
        await window.wait_idle()


class TestWindowAdvance:
    """Sliding the window reuses prepared handles and releases dropped ones."""

    @pytest.mark.asyncio
    async def test_advance_carries_ready_handles(self, window, preparer, released):
        window.set_window(item("A"), next=item("B"))
        preparer.open("A", "B")
        await window.wait_idle()
        handle_b = window.ready_slot(NEXT)

        slots = window.set_window(item("B"), previous=item("A"), next=item("C"))

        assert [s["state"] for s in slots] == ["ready", "ready", "preparing"]
        assert window.ready_slot(CURRENT) is handle_b
        assert released == []
        preparer.open("C")
        await window.wait_idle()
        assert preparer.calls == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_dropped_items_are_released(self, window, preparer, released):
        window.set_window(item("A"), previous=item("B"), next=item("C"))
        preparer.open("A", "B", "C")
        await window.wait_idle()

        window.set_window(item("X"))

        assert sorted(released) == ["A", "B", "C"]
        preparer.open("X")
        await window.wait_idle()

    @pytest.mark.asyncio
    async def test_aclose_cancels_and_releases(self, window, preparer, released):
        window.set_window(item("A"), next=item("B"))
        preparer.open("A")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        await window.aclose()

        assert window.in_flight == 0
        assert window.slot(CURRENT) is None
        assert released == ["A"]

    def test_position_labels(self):
        assert SlotPosition.from_label("previous") is PREVIOUS
        assert NEXT.label == "next"
        with pytest.raises(ValueError):
            SlotPosition.from_label("later")


class TestCachePreparer:
    """Preparation through the real content cache."""

    @pytest.mark.asyncio
    async def test_prepares_from_cache(self, tmp_path, media_server):
        cache = ContentCache(str(tmp_path / "videos"), downloader=media_server.downloader())
        url = media_server.add("a.mp4", b"video-bytes")
        window = PreloadWindow(CachePreparer(cache))

        window.set_window(FeedItem("video-a", url))
        await window.wait_idle()

        handle = window.ready_slot(CURRENT)
        assert handle.path == cache.path_for("video-a")
        assert handle.size_bytes == len(b"video-bytes")

    @pytest.mark.asyncio
    async def test_empty_asset_fails_slot(self, tmp_path, media_server):
        cache = ContentCache(str(tmp_path / "videos"), downloader=media_server.downloader())
        url = media_server.add("empty.mp4", b"")
        window = PreloadWindow(CachePreparer(cache))

        window.set_window(FeedItem("empty", url))
        await window.wait_idle()

        assert window.slot(CURRENT).state == SlotState.FAILED

    @pytest.mark.asyncio
    async def test_transport_failure_fails_slot(self, tmp_path, media_server):
        cache = ContentCache(str(tmp_path / "videos"), downloader=media_server.downloader())
        window = PreloadWindow(CachePreparer(cache))

        window.set_window(FeedItem("gone", media_server.url("gone.mp4")))
        await window.wait_idle()

        slot = window.slot(CURRENT)
        assert slot.state == SlotState.FAILED
        assert "404" in str(slot.error)
