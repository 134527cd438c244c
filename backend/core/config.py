"""
Core configuration and constants for the Feed Cache backend.
"""
import os

DATA_DIR = os.environ.get("FEEDCACHE_DATA_DIR", "data")

# Cache configuration
CACHE_ROOT = os.environ.get("FEEDCACHE_CACHE_ROOT", os.path.join(DATA_DIR, "cache"))
VIDEO_CACHE_DIR = os.path.join(CACHE_ROOT, "videos")
THUMBNAIL_CACHE_DIR = os.path.join(CACHE_ROOT, "thumbnails")
MAX_CACHE_SIZE_BYTES = int(os.environ.get("FEEDCACHE_MAX_CACHE_SIZE_BYTES", 500 * 1024 * 1024))  # 500 MB
MAX_THUMBNAIL_CACHE_SIZE_BYTES = int(
    os.environ.get("FEEDCACHE_MAX_THUMBNAIL_CACHE_SIZE_BYTES", 50 * 1024 * 1024)
)  # 50 MB
CACHE_CLEANUP_TARGET_RATIO = float(os.environ.get("FEEDCACHE_CLEANUP_TARGET_RATIO", "0.75"))
VIDEO_FILE_EXTENSION = "mp4"
THUMBNAIL_FILE_EXTENSION = "jpg"
TEMP_FILE_SUFFIX = "~.tmp"  # "~" never survives identifier sanitization
STALE_TEMP_FILE_SECONDS = 3600  # Leftover temp files from a crashed download
MAX_IDENTIFIER_LENGTH = 200

# Download configuration
DOWNLOAD_CONNECT_TIMEOUT = 10.0
DOWNLOAD_READ_TIMEOUT = 300.0
DOWNLOAD_CHUNK_SIZE = 64 * 1024
DOWNLOAD_MAX_ATTEMPTS = int(os.environ.get("FEEDCACHE_DOWNLOAD_MAX_ATTEMPTS", "1"))  # 1 = no retry
DOWNLOAD_BACKOFF_BASE_SECONDS = 0.5
DOWNLOAD_BACKOFF_MAX_SECONDS = 8.0

# Feed catalog
DB_FILE = os.environ.get("FEEDCACHE_DB_FILE", os.path.join(DATA_DIR, "feed.db"))
FEED_PAGE_SIZE = 10

# Allowed origins for CORS (comma-separated)
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "").split(",") if os.environ.get("ALLOWED_ORIGINS") else ["*"]
