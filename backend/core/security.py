"""
Path and URL safety helpers for the Feed Cache backend.
"""
import os
import logging
from urllib.parse import urlparse

from core.config import MAX_IDENTIFIER_LENGTH, TEMP_FILE_SUFFIX
from core.errors import InvalidIdentifier

logger = logging.getLogger(__name__)


def sanitize_identifier(identifier: str) -> str:
    """
    Map a caller identifier to a filesystem-safe file name stem.

    Raises InvalidIdentifier if:
    - Identifier is empty/None or too long
    - Identifier contains directory traversal attempts or NUL
    """
    if not identifier:
        raise InvalidIdentifier("Identifier must not be empty")

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifier(f"Identifier longer than {MAX_IDENTIFIER_LENGTH} characters")

    # Reject potential directory traversal attempts
    if ".." in identifier or "/" in identifier or "\\" in identifier or "\x00" in identifier:
        logger.warning(f"Rejected suspicious cache identifier: {identifier[:50]}")
        raise InvalidIdentifier(f"Identifier is not a valid path segment: {identifier[:50]}")

    return "".join(c if c.isascii() and (c.isalnum() or c in "._-@") else "_" for c in identifier)


def get_cache_file_path(cache_dir: str, identifier: str, file_extension: str) -> str:
    """
    Get the cache file path for an identifier.

    The resulting path is guaranteed to live directly inside cache_dir.
    """
    safe_name = sanitize_identifier(identifier)
    filename = f"{safe_name}.{file_extension}" if file_extension else safe_name

    # Temp-file names are reserved for in-progress writes
    if filename.endswith(TEMP_FILE_SUFFIX):
        raise InvalidIdentifier(f"Cache file name collides with temp files: {filename[:50]}")

    # Final safety check - ensure resulting path is within cache_dir
    result_path = os.path.join(cache_dir, filename)
    if os.path.dirname(os.path.abspath(result_path)) != os.path.abspath(cache_dir):
        logger.warning(f"Cache path escaped allowed directory: {result_path}")
        raise InvalidIdentifier(f"Identifier is not a valid path segment: {identifier[:50]}")

    return result_path


def validate_remote_url(url: str) -> None:
    """Validate that a remote media URL is http(s) with a host. Raises ValueError on failure."""
    parsed = urlparse(url or "")

    if parsed.scheme not in ("http", "https"):
        raise ValueError("Only http/https URLs are allowed")

    if not parsed.hostname:
        raise ValueError("Invalid URL: no hostname")
