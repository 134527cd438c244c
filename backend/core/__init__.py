"""
Core module exports.
"""
from core.config import (
    CACHE_ROOT,
    VIDEO_CACHE_DIR,
    THUMBNAIL_CACHE_DIR,
    MAX_CACHE_SIZE_BYTES,
    MAX_THUMBNAIL_CACHE_SIZE_BYTES,
    CACHE_CLEANUP_TARGET_RATIO,
    DB_FILE,
)
from core.errors import (
    CacheError,
    TransportError,
    RemoteFetchFailed,
    StorageFailure,
    InvalidIdentifier,
    PreparationError,
)
from core.security import sanitize_identifier, get_cache_file_path, validate_remote_url

__all__ = [
    "CACHE_ROOT",
    "VIDEO_CACHE_DIR",
    "THUMBNAIL_CACHE_DIR",
    "MAX_CACHE_SIZE_BYTES",
    "MAX_THUMBNAIL_CACHE_SIZE_BYTES",
    "CACHE_CLEANUP_TARGET_RATIO",
    "DB_FILE",
    "CacheError",
    "TransportError",
    "RemoteFetchFailed",
    "StorageFailure",
    "InvalidIdentifier",
    "PreparationError",
    "sanitize_identifier",
    "get_cache_file_path",
    "validate_remote_url",
]
