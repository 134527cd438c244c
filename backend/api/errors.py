"""
Mapping from cache errors to HTTP errors.
"""
from fastapi import HTTPException

from core.errors import CacheError, TransportError, StorageFailure, InvalidIdentifier, PreparationError


def http_error_for(error: CacheError) -> HTTPException:
    """Translate a cache error into the HTTPException a route should raise."""
    if isinstance(error, InvalidIdentifier):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, TransportError):
        return HTTPException(status_code=502, detail=f"Remote fetch failed: {error}")
    if isinstance(error, StorageFailure):
        return HTTPException(status_code=507, detail=f"Cache storage failure: {error}")
    if isinstance(error, PreparationError):
        return HTTPException(status_code=422, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
