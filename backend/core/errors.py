"""
Error types for the content cache and preload window.
"""
from typing import Optional

# HTTP statuses worth another attempt: request timeout, rate limiting, server side failures
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class CacheError(Exception):
    """Base class for cache errors."""


class TransportError(CacheError):
    """Remote fetch failed (network, timeout, bad status)."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None,
                 retryable: Optional[bool] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        if retryable is None:
            retryable = status_code is None or status_code in RETRYABLE_STATUS_CODES
        self.retryable = retryable


class StorageFailure(CacheError):
    """Local filesystem operation failed."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


class InvalidIdentifier(CacheError, ValueError):
    """Identifier cannot be used as a cache file name."""


class PreparationError(CacheError):
    """A preload preparation produced an asset that cannot be played."""


RemoteFetchFailed = TransportError
StorageError = StorageFailure
