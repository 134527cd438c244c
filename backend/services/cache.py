"""
On-disk content cache for remote feed media.

The cache directory listing is the only index: sizes and entries are
recomputed from the filesystem on every call. All mutating operations on a
ContentCache run one at a time under a single asyncio.Lock that covers the
whole directory, because eviction scans and mutates every entry.
"""
import os
import stat
import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import aiofiles

from core.config import (
    MAX_CACHE_SIZE_BYTES,
    CACHE_CLEANUP_TARGET_RATIO,
    VIDEO_FILE_EXTENSION,
    STALE_TEMP_FILE_SECONDS,
)
from core.errors import TransportError, StorageFailure
from core.security import get_cache_file_path, validate_remote_url
from services.fetcher import (
    HttpDownloader,
    RemoteFetcher,
    RetryPolicy,
    TEMP_SUFFIX,
    new_temp_path,
    remove_quietly,
)

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """
    A cached asset as found on disk.

    identifier is the sanitized file name stem, which differs from the
    caller's identifier when sanitization replaced characters ("a b" is
    listed as "a_b"). created_at is the file mtime.
    """

    identifier: str
    local_path: str
    size_bytes: int
    created_at: float


@dataclass
class EvictionResult:
    # Sanitized stems, as in CacheEntry.identifier
    removed: List[str] = field(default_factory=list)
    freed_bytes: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    size_after: int = 0


@dataclass
class ClearResult:
    removed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class ContentCache:
    """
    Identifier-keyed file cache with a size bound.

    Features:
    - Download on miss, no network access on hit (identifiers are immutable)
    - Temp file + os.replace so the final name never shows a partial file
    - Oldest-created-first eviction down to target_ratio of max size once
      max size is exceeded
    - Single-flight serialization of fetch/store/evict/clear
    """

    def __init__(
        self,
        cache_dir: str,
        max_size_bytes: int = MAX_CACHE_SIZE_BYTES,
        target_ratio: float = CACHE_CLEANUP_TARGET_RATIO,
        file_extension: str = VIDEO_FILE_EXTENSION,
        downloader: Optional[RemoteFetcher] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        if not 0 < target_ratio <= 1:
            raise ValueError(f"target_ratio must be in (0, 1], got {target_ratio}")
        if file_extension and f".{file_extension}".endswith(TEMP_SUFFIX):
            raise ValueError(f"file_extension {file_extension!r} collides with temp file names")
        self.cache_dir = cache_dir
        self.max_size_bytes = max_size_bytes
        self.target_ratio = target_ratio
        self.file_extension = file_extension
        self.retry_policy = retry_policy
        self._downloader = downloader if downloader is not None else HttpDownloader()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def target_size_bytes(self) -> int:
        return int(self.max_size_bytes * self.target_ratio)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """Create the cache directory and sweep temp files left by a crash."""
        async with self._lock:
            self._ensure_directory()
            swept = self._sweep_stale_temp_files()
        if swept:
            logger.info(f"Removed {swept} stale temp files from {self.cache_dir}")
        snapshot = await self.debug_snapshot()
        logger.info(f"Cache initialized at {self.cache_dir}: {snapshot['file_count']} files, "
                    f"{snapshot['total_size_mb']} MB")

    def _ensure_directory(self) -> None:
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
        except OSError as e:
            raise StorageFailure(f"Failed to create cache directory: {e}", path=self.cache_dir) from e

    def _sweep_stale_temp_files(self) -> int:
        now = time.time()
        swept = 0
        try:
            names = os.listdir(self.cache_dir)
        except OSError as e:
            raise StorageFailure(f"Failed to list cache directory: {e}", path=self.cache_dir) from e
        for name in names:
            if not name.endswith(TEMP_SUFFIX):
                continue
            path = os.path.join(self.cache_dir, name)
            try:
                if now - os.path.getmtime(path) > STALE_TEMP_FILE_SECONDS:
                    self._remove_file(path)
                    swept += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to remove stale temp file {name}: {e}")
        return swept

    # ========================================================================
    # Lookup
    # ========================================================================

    def path_for(self, identifier: str) -> str:
        """Final cache path for identifier. Raises InvalidIdentifier."""
        return get_cache_file_path(self.cache_dir, identifier, self.file_extension)

    async def cached_path(self, identifier: str) -> Optional[str]:
        """Path of the cached asset, or None. Never fetches."""
        path = self.path_for(identifier)
        return path if os.path.isfile(path) else None

    async def entries(self) -> List[CacheEntry]:
        """All entries, oldest first."""
        return self._scan()

    async def size_on_disk(self) -> int:
        """Total size of cached files in bytes, walked from the directory every call."""
        return sum(entry.size_bytes for entry in self._scan())

    async def debug_snapshot(self) -> Dict:
        """Read-only diagnostic view of the cache."""
        entries = self._scan()
        total = sum(entry.size_bytes for entry in entries)
        return {
            "cache_dir": self.cache_dir,
            "file_count": len(entries),
            "total_size_bytes": total,
            "total_size_mb": round(total / 1024 / 1024, 2),
            "max_size_bytes": self.max_size_bytes,
            "hits": self._hits,
            "misses": self._misses,
        }

    def _scan(self) -> List[CacheEntry]:
        try:
            names = os.listdir(self.cache_dir)
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error(f"Failed to list cache directory {self.cache_dir}: {e}")
            raise StorageFailure(f"Failed to list cache directory: {e}", path=self.cache_dir) from e

        suffix = f".{self.file_extension}" if self.file_extension else ""
        entries = []
        for name in names:
            # In-progress downloads are not entries
            if name.endswith(TEMP_SUFFIX):
                continue
            path = os.path.join(self.cache_dir, name)
            try:
                st = os.stat(path)
            except FileNotFoundError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            identifier = name[:-len(suffix)] if suffix and name.endswith(suffix) else name
            entries.append(CacheEntry(identifier, path, st.st_size, st.st_mtime))

        entries.sort(key=lambda e: (e.created_at, os.path.basename(e.local_path)))
        return entries

    # ========================================================================
    # Writes
    # ========================================================================

    async def fetch(self, url: str, identifier: str, refresh: bool = False) -> str:
        """
        Resolve identifier to a local file, downloading url on a miss.

        Raises TransportError if the download fails, StorageFailure if the
        file cannot be moved into place. Other entries may be evicted as a
        side effect.
        """
        path = self.path_for(identifier)

        async with self._lock:
            if not refresh and os.path.isfile(path):
                self._hits += 1
                logger.debug(f"CACHE HIT: {identifier}")
                return path

            try:
                validate_remote_url(url)
            except ValueError as e:
                raise TransportError(str(e), url=url, retryable=False) from e
            self._misses += 1

            self._ensure_directory()
            logger.info(f"CACHE MISS: downloading {identifier} from {url[:60]}...")
            temp_path = await self._download(url)
            self._move_into_place(temp_path, path)
            self._cleanup_if_needed(protect=path)
            return path

    async def store(self, identifier: str, data: bytes, replace: bool = False) -> str:
        """Cache in-process bytes under identifier (e.g. thumbnails)."""
        path = self.path_for(identifier)

        async with self._lock:
            if not replace and os.path.isfile(path):
                self._hits += 1
                return path

            self._ensure_directory()
            temp_path = new_temp_path(self.cache_dir)
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    await f.write(data)
            except OSError as e:
                remove_quietly(temp_path)
                raise StorageFailure(f"Failed to write cache file: {e}", path=temp_path) from e
            self._move_into_place(temp_path, path)
            logger.info(f"Stored {len(data)} bytes for {identifier}")
            self._cleanup_if_needed(protect=path)
            return path

    async def _download(self, url: str) -> str:
        if self.retry_policy is None:
            return await self._downloader.download(url, self.cache_dir)
        return await self.retry_policy.run(lambda: self._downloader.download(url, self.cache_dir))

    def _move_into_place(self, temp_path: str, path: str) -> None:
        try:
            os.replace(temp_path, path)
        except OSError as e:
            remove_quietly(temp_path)
            raise StorageFailure(f"Failed to move download into cache: {e}", path=path) from e

    def _remove_file(self, path: str) -> None:
        os.remove(path)

    # ========================================================================
    # Eviction
    # ========================================================================

    async def evict_to_target(self, target_bytes: int, protect: Optional[str] = None) -> EvictionResult:
        """Remove oldest-created entries until total size <= target_bytes."""
        async with self._lock:
            return self._evict_locked(target_bytes, protect)

    def _cleanup_if_needed(self, protect: Optional[str] = None) -> Optional[EvictionResult]:
        try:
            current_size = sum(entry.size_bytes for entry in self._scan())
        except StorageFailure as e:
            logger.error(f"Skipping cache cleanup: {e}")
            return None

        if current_size <= self.max_size_bytes:
            return None

        logger.info(f"Cache over limit ({current_size / 1024 / 1024:.2f} MB > "
                    f"{self.max_size_bytes / 1024 / 1024:.2f} MB), evicting to {self.target_size_bytes} bytes")
        return self._evict_locked(self.target_size_bytes, protect)

    def _evict_locked(self, target_bytes: int, protect: Optional[str] = None) -> EvictionResult:
        result = EvictionResult()
        entries = self._scan()
        current_size = sum(entry.size_bytes for entry in entries)

        for entry in entries:
            if current_size <= target_bytes:
                break
            # The entry the triggering write just produced stays
            if protect is not None and entry.local_path == protect:
                continue
            try:
                self._remove_file(entry.local_path)
            except FileNotFoundError:
                current_size -= entry.size_bytes
                continue
            except OSError as e:
                logger.warning(f"Failed to evict cache file {entry.identifier}: {e}")
                result.failures.append((entry.identifier, str(e)))
                continue
            current_size -= entry.size_bytes
            result.removed.append(entry.identifier)
            result.freed_bytes += entry.size_bytes
            logger.info(f"Evicted cache file: {os.path.basename(entry.local_path)}")

        result.size_after = current_size
        logger.info(f"Cache cleanup freed {result.freed_bytes / 1024 / 1024:.2f} MB "
                    f"({len(result.removed)} files, {len(result.failures)} failures)")
        if current_size > target_bytes:
            logger.warning(f"Cache still above target after eviction: {current_size} > {target_bytes} bytes")
        return result

    async def clear(self) -> ClearResult:
        """Delete every file in the cache directory. Failures are reported, not raised."""
        result = ClearResult()
        async with self._lock:
            try:
                names = sorted(os.listdir(self.cache_dir))
            except FileNotFoundError:
                return result
            except OSError as e:
                logger.error(f"Error clearing cache {self.cache_dir}: {e}")
                result.failures.append((self.cache_dir, str(e)))
                return result

            for name in names:
                path = os.path.join(self.cache_dir, name)
                if not os.path.isfile(path):
                    continue
                try:
                    self._remove_file(path)
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.warning(f"Failed to remove cache file {name}: {e}")
                    result.failures.append((name, str(e)))
                    continue
                result.removed += 1

        if result.failures:
            logger.warning(f"Cache clear removed {result.removed} files with {len(result.failures)} failures")
        else:
            logger.info(f"Cache cleared successfully ({result.removed} files)")
        return result
