"""
SQLite feed catalog for the Feed Cache backend.

Maps video identifiers to their remote media URLs and keeps feed order
(newest first), so the preload window can be driven by identifiers alone.
"""
import os
import time
import sqlite3
import logging
import aiosqlite
from typing import Optional, Dict, List, Any, Tuple
from contextlib import asynccontextmanager

from core.config import DB_FILE, FEED_PAGE_SIZE

logger = logging.getLogger(__name__)


def get_db_connection() -> sqlite3.Connection:
    """Get a synchronous database connection (for init/migration)."""
    db_dir = os.path.dirname(DB_FILE)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir)
    conn = sqlite3.connect(DB_FILE)
    conn.row_factory = sqlite3.Row
    return conn


@asynccontextmanager
async def get_async_db():
    """Get an async database connection."""
    db = await aiosqlite.connect(DB_FILE)
    db.row_factory = aiosqlite.Row
    try:
        yield db
    finally:
        await db.close()


def init_database():
    """Initialize database schema and run migrations."""
    conn = get_db_connection()
    cursor = conn.cursor()

    # Create schema_version table first (for tracking migrations)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at REAL
        )
    """)

    cursor.execute("SELECT MAX(version) FROM schema_version")
    row = cursor.fetchone()
    current_version = row[0] if row and row[0] else 0

    migrations = [
        # Version 1: Feed videos
        """
        CREATE TABLE IF NOT EXISTS videos (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            video_url TEXT NOT NULL,
            thumbnail_url TEXT,
            created_at REAL NOT NULL
        )
        """,
        # Version 2: Index for feed ordering
        """
        CREATE INDEX IF NOT EXISTS idx_videos_created_at ON videos(created_at)
        """,
    ]

    now = time.time()
    for i, migration_sql in enumerate(migrations, start=1):
        if i > current_version:
            logger.info(f"Running database migration v{i}...")
            cursor.execute(migration_sql)
            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (i, now)
            )
            conn.commit()
            logger.info(f"Migration v{i} complete")

    conn.close()

    logger.info(f"Database initialized: {DB_FILE} (schema v{len(migrations)})")


def _row_to_video(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "video_url": row["video_url"],
        "thumbnail_url": row["thumbnail_url"],
        "created_at": row["created_at"],
    }


# ============================================================================
# Video Operations
# ============================================================================

async def register_video(video_id: str, video_url: str, user_id: Optional[str] = None,
                         thumbnail_url: Optional[str] = None,
                         created_at: Optional[float] = None) -> Dict[str, Any]:
    """Insert or update a feed video."""
    created_at = created_at if created_at is not None else time.time()

    async with get_async_db() as db:
        await db.execute("""
            INSERT INTO videos (id, user_id, video_url, thumbnail_url, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                user_id = excluded.user_id,
                video_url = excluded.video_url,
                thumbnail_url = excluded.thumbnail_url
        """, (video_id, user_id, video_url, thumbnail_url, created_at))
        await db.commit()

    return await get_video(video_id)


async def get_video(video_id: str) -> Optional[Dict[str, Any]]:
    """Get a feed video by id."""
    async with get_async_db() as db:
        cursor = await db.execute("SELECT * FROM videos WHERE id = ?", (video_id,))
        row = await cursor.fetchone()
        return _row_to_video(row) if row else None


async def delete_video(video_id: str) -> bool:
    """Delete a feed video. Returns True if a row was removed."""
    async with get_async_db() as db:
        cursor = await db.execute("DELETE FROM videos WHERE id = ?", (video_id,))
        await db.commit()
        return cursor.rowcount > 0


async def list_videos(before: Optional[float] = None, limit: int = FEED_PAGE_SIZE) -> List[Dict[str, Any]]:
    """
    Page through the feed, newest first.

    Pass the created_at of the last video of a page as `before` to get the next page.
    """
    async with get_async_db() as db:
        if before is None:
            cursor = await db.execute(
                "SELECT * FROM videos ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
            )
        else:
            cursor = await db.execute(
                "SELECT * FROM videos WHERE created_at < ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (before, limit)
            )
        rows = await cursor.fetchall()
        return [_row_to_video(row) for row in rows]


async def get_feed_neighbors(video_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """
    Get the (previous, next) videos around video_id in feed order.

    The feed runs newest first, so previous is the next newer video and
    next is the next older one. Either may be None.
    """
    current = await get_video(video_id)
    if current is None:
        return None, None

    async with get_async_db() as db:
        cursor = await db.execute("""
            SELECT * FROM videos
            WHERE created_at > ? OR (created_at = ? AND id > ?)
            ORDER BY created_at ASC, id ASC LIMIT 1
        """, (current["created_at"], current["created_at"], video_id))
        prev_row = await cursor.fetchone()

        cursor = await db.execute("""
            SELECT * FROM videos
            WHERE created_at < ? OR (created_at = ? AND id < ?)
            ORDER BY created_at DESC, id DESC LIMIT 1
        """, (current["created_at"], current["created_at"], video_id))
        next_row = await cursor.fetchone()

    return (
        _row_to_video(prev_row) if prev_row else None,
        _row_to_video(next_row) if next_row else None,
    )
