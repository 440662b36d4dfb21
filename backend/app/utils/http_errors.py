"""
Translate engine rejections into HTTP responses.

ReservationError -> its own status code, detail "CODE: reason"
StorageError     -> 503, retryable
"""

from fastapi import HTTPException

from app.services.record_store import StorageError
from app.services.reservation_errors import ReservationError


def http_error(error: Exception) -> HTTPException:
    if isinstance(error, ReservationError):
        return HTTPException(status_code=error.status_code, detail=error.detail)
    if isinstance(error, StorageError):
        return HTTPException(status_code=503, detail=f"STORAGE_ERROR: {error}. Please retry.")
    return HTTPException(status_code=500, detail=f"Unexpected error: {error}")
