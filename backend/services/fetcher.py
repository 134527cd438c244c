"""
Remote fetch service for cache misses.

Streams remote media into temp files inside the cache directory, so the
final move into place is a same-filesystem rename.
"""
import os
import uuid
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, TypeVar

import aiofiles
import httpx

from core.config import (
    DOWNLOAD_CONNECT_TIMEOUT,
    DOWNLOAD_READ_TIMEOUT,
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_MAX_ATTEMPTS,
    DOWNLOAD_BACKOFF_BASE_SECONDS,
    DOWNLOAD_BACKOFF_MAX_SECONDS,
    TEMP_FILE_SUFFIX,
)
from core.errors import TransportError, StorageFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEMP_SUFFIX = TEMP_FILE_SUFFIX


class RemoteFetcher(Protocol):
    """Anything that can download a URL into a temp file inside a directory."""

    async def download(self, url: str, directory: str) -> str:
        ...


def new_temp_path(directory: str) -> str:
    """Unique temp file path inside directory."""
    return os.path.join(directory, f"{uuid.uuid4().hex}{TEMP_SUFFIX}")


def remove_quietly(path: str) -> None:
    """Remove a leftover temp file, logging instead of raising."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove temp file {path}: {e}")


class HttpDownloader:
    """
    httpx based remote fetch capability.

    Owns its AsyncClient unless one is injected; injected clients are
    left open on aclose().
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 chunk_size: int = DOWNLOAD_CHUNK_SIZE):
        self._client = client
        self._owns_client = client is None
        self.chunk_size = chunk_size

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=3,
                timeout=httpx.Timeout(connect=DOWNLOAD_CONNECT_TIMEOUT, read=DOWNLOAD_READ_TIMEOUT,
                                      write=10.0, pool=None),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._client

    async def download(self, url: str, directory: str) -> str:
        """
        Download url into a new temp file in directory and return its path.

        Raises TransportError for network/status failures and StorageFailure
        if the temp file cannot be written. The temp file never survives a failure.
        """
        temp_path = new_temp_path(directory)
        client = self._get_client()
        total = 0
        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise TransportError(
                        f"Remote fetch returned HTTP {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                    )
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        await f.write(chunk)
                        total += len(chunk)
        except TransportError:
            remove_quietly(temp_path)
            raise
        except httpx.TimeoutException as e:
            remove_quietly(temp_path)
            raise TransportError(f"Remote fetch timed out: {e}", url=url, retryable=True) from e
        except httpx.TransportError as e:
            remove_quietly(temp_path)
            raise TransportError(f"Connection failed: {e}", url=url, retryable=True) from e
        except httpx.HTTPError as e:
            remove_quietly(temp_path)
            raise TransportError(f"Remote fetch failed: {e}", url=url, retryable=False) from e
        except OSError as e:
            remove_quietly(temp_path)
            raise StorageFailure(f"Failed to write download: {e}", path=temp_path) from e
        except BaseException:
            remove_quietly(temp_path)
            raise

        logger.info(f"DOWNLOADED: {total} bytes from {url[:60]}...")
        return temp_path

    async def aclose(self):
        """Clean up resources."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


@dataclass
class RetryPolicy:
    """
    Bounded exponential backoff for retryable transport failures.

    max_attempts=1 disables retry.
    """

    max_attempts: int = DOWNLOAD_MAX_ATTEMPTS
    base_delay: float = DOWNLOAD_BACKOFF_BASE_SECONDS
    max_delay: float = DOWNLOAD_BACKOFF_MAX_SECONDS

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(error, TransportError) and error.retryable

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except TransportError as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(f"Retrying fetch (attempt {attempt + 1}/{self.max_attempts}) in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
                attempt += 1
