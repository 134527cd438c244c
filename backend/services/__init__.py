"""
Services module exports.
"""
from services.cache import ContentCache, CacheEntry, EvictionResult, ClearResult
from services.fetcher import HttpDownloader, RemoteFetcher, RetryPolicy
from services.preloader import (
    PreloadWindow,
    PreloadSlot,
    PreparedMedia,
    CachePreparer,
    FeedItem,
    SlotPosition,
    SlotState,
)

__all__ = [
    "ContentCache",
    "CacheEntry",
    "EvictionResult",
    "ClearResult",
    "HttpDownloader",
    "RemoteFetcher",
    "RetryPolicy",
    "PreloadWindow",
    "PreloadSlot",
    "PreparedMedia",
    "CachePreparer",
    "FeedItem",
    "SlotPosition",
    "SlotState",
]
