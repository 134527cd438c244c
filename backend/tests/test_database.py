"""
Tests for the SQLite feed catalog.
"""
import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services import database


@pytest.fixture
def catalog(tmp_path, monkeypatch):
    """Fresh catalog database for each test."""
    monkeypatch.setattr(database, "DB_FILE", str(tmp_path / "feed.db"))
    database.init_database()
    return database


async def seed(catalog, count):
    for i in range(count):
        await catalog.register_video(f"v{i}", f"https://media.example.com/v{i}.mp4", created_at=1000.0 + i)


class TestFeedCatalog:

    def test_init_is_repeatable(self, catalog):
        catalog.init_database()
        conn = catalog.get_db_connection()
        versions = [row[0] for row in conn.execute("SELECT version FROM schema_version")]
        conn.close()
        assert versions == [1, 2]

    @pytest.mark.asyncio
    async def test_register_and_get(self, catalog):
        video = await catalog.register_video("v1", "https://media.example.com/v1.mp4", user_id="u1",
                                             thumbnail_url="https://media.example.com/v1.jpg")

        assert video["id"] == "v1"
        assert video["user_id"] == "u1"
        assert await catalog.get_video("v1") == video
        assert await catalog.get_video("missing") is None

    @pytest.mark.asyncio
    async def test_register_updates_url_but_keeps_position(self, catalog):
        await catalog.register_video("v1", "https://media.example.com/old.mp4", created_at=5.0)
        video = await catalog.register_video("v1", "https://media.example.com/new.mp4", created_at=99.0)

        assert video["video_url"] == "https://media.example.com/new.mp4"
        assert video["created_at"] == 5.0

    @pytest.mark.asyncio
    async def test_list_videos_pages_newest_first(self, catalog):
        await seed(catalog, 5)

        first = await catalog.list_videos(limit=2)
        second = await catalog.list_videos(before=first[-1]["created_at"], limit=2)
        third = await catalog.list_videos(before=second[-1]["created_at"], limit=2)

        assert [v["id"] for v in first] == ["v4", "v3"]
        assert [v["id"] for v in second] == ["v2", "v1"]
        assert [v["id"] for v in third] == ["v0"]

    @pytest.mark.asyncio
    async def test_feed_neighbors(self, catalog):
        await seed(catalog, 3)

        previous, next_video = await catalog.get_feed_neighbors("v1")
        assert previous["id"] == "v2"
        assert next_video["id"] == "v0"

        previous, next_video = await catalog.get_feed_neighbors("v2")
        assert previous is None
        assert next_video["id"] == "v1"

        assert await catalog.get_feed_neighbors("missing") == (None, None)

    @pytest.mark.asyncio
    async def test_delete_video(self, catalog):
        await seed(catalog, 1)

        assert await catalog.delete_video("v0") is True
        assert await catalog.delete_video("v0") is False
        assert await catalog.list_videos() == []
