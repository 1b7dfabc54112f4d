import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import utcnow
from readsync.database import get_session
from readsync.errors import ReadSyncError
from readsync.models import ActiveReadingSession
from readsync.routers.deps import get_sync, http_error
from readsync.schemas.session import (
    ActiveSessionResponse,
    AdjustPageRequest,
    CompleteSessionRequest,
    CompleteSessionResponse,
    DeleteSessionsRequest,
    QuickProgressRequest,
    QuickProgressResponse,
    ReadingSessionResponse,
    StartSessionRequest,
)
from readsync.services.active_session import ActiveSessionService
from readsync.services.reading_log import ReadingLog
from readsync.sync.service import SyncService

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _active_response(active: ActiveReadingSession) -> ActiveSessionResponse:
    response = ActiveSessionResponse.model_validate(active)
    response.elapsed_time = active.elapsed_seconds(utcnow())
    return response


@router.get("/active", response_model=ActiveSessionResponse)
async def get_active(
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    active = await ActiveSessionService(session, sync).get_active()
    if active is None:
        raise HTTPException(status_code=404, detail="No active reading session")
    return _active_response(active)


@router.post("/active", response_model=ActiveSessionResponse, status_code=201)
async def start_session(
    data: StartSessionRequest,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        active = await ActiveSessionService(session, sync).start(
            data.book_id, start_page=data.start_page, replace=data.replace
        )
    except ReadSyncError as e:
        raise http_error(e) from e
    return _active_response(active)


@router.post("/active/pause", response_model=ActiveSessionResponse)
async def pause_session(
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        active = await ActiveSessionService(session, sync).pause()
    except ReadSyncError as e:
        raise http_error(e) from e
    return _active_response(active)


@router.post("/active/resume", response_model=ActiveSessionResponse)
async def resume_session(
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        active = await ActiveSessionService(session, sync).resume()
    except ReadSyncError as e:
        raise http_error(e) from e
    return _active_response(active)


@router.post("/active/page", response_model=ActiveSessionResponse)
async def adjust_page(
    data: AdjustPageRequest,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        active = await ActiveSessionService(session, sync).adjust_page(delta=data.delta, page=data.page)
    except ReadSyncError as e:
        raise http_error(e) from e
    return _active_response(active)


@router.post("/active/complete", response_model=CompleteSessionResponse)
async def complete_session(
    data: CompleteSessionRequest | None = None,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    end_page = data.end_page if data else None
    try:
        completed = await ActiveSessionService(session, sync).complete(end_page=end_page)
    except ReadSyncError as e:
        raise http_error(e) from e
    if completed is None:
        return CompleteSessionResponse(completed=False)
    return CompleteSessionResponse(
        completed=True, session=ReadingSessionResponse.model_validate(completed)
    )


@router.delete("/active", status_code=204)
async def abandon_session(
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        await ActiveSessionService(session, sync).abandon()
    except ReadSyncError as e:
        raise http_error(e) from e


@router.post("/quick-progress", response_model=QuickProgressResponse, status_code=201)
async def quick_progress(
    data: QuickProgressRequest,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        book, logged = await ReadingLog(session, sync).quick_progress(data.book_id, data.delta)
    except ReadSyncError as e:
        raise http_error(e) from e
    return QuickProgressResponse(
        book_id=book.id,
        current_page=book.current_page,
        session=ReadingSessionResponse.model_validate(logged) if logged else None,
    )


@router.get("", response_model=list[ReadingSessionResponse])
async def list_sessions(
    book_id: uuid.UUID | None = None,
    include_auto: bool = True,
    session: AsyncSession = Depends(get_session),
):
    return await ReadingLog(session).list_sessions(book_id=book_id, include_auto=include_auto)


@router.post("/delete")
async def delete_sessions(
    data: DeleteSessionsRequest,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        deleted = await ReadingLog(session, sync).delete_sessions(data.session_ids)
    except ReadSyncError as e:
        raise http_error(e) from e
    return {"deleted": deleted}


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        await ReadingLog(session, sync).delete_sessions([session_id])
    except ReadSyncError as e:
        raise http_error(e) from e
