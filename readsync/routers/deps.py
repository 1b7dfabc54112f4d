from fastapi import HTTPException, Request

from readsync.errors import (
    ActiveSessionConflictError,
    InvalidStateError,
    NotFoundError,
    NoActiveSessionError,
    PardonUnavailableError,
    ProfileMissingError,
    ReadSyncError,
)
from readsync.sync.service import SyncService


def get_sync(request: Request) -> SyncService:
    return request.app.state.sync


def http_error(exc: ReadSyncError) -> HTTPException:
    """Map a domain error onto the HTTP status the API documents for it."""
    if isinstance(exc, ActiveSessionConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "session_id": str(exc.session_id),
                "book_title": exc.book_title,
                "source_device": exc.source_device,
            },
        )
    if isinstance(exc, PardonUnavailableError):
        eligibility = exc.eligibility
        return HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "status": eligibility.status,
                "next_available": eligibility.next_available.isoformat()
                if eligibility.next_available
                else None,
            },
        )
    if isinstance(exc, (NotFoundError, NoActiveSessionError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ProfileMissingError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
