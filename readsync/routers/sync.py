"""Peer-facing inbox. Always accepts; bad payloads are logged and dropped."""

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.database import get_session
from readsync.routers.deps import get_sync
from readsync.sync.service import SyncService

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/messages", status_code=202)
async def receive_message(
    payload: dict = Body(...),
    sync: SyncService = Depends(get_sync),
):
    applied = await sync.receive_raw(payload)
    return {"accepted": True, "applied": applied}


@router.post("/context", status_code=202)
async def receive_context(
    payload: dict = Body(...),
    sync: SyncService = Depends(get_sync),
):
    applied = await sync.receive_context_raw(payload)
    return {"accepted": True, "applied": applied}


@router.post("/broadcast", status_code=202)
async def broadcast_library(
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    broadcast = await sync.broadcast_library(session)
    return {
        "sent": broadcast is not None,
        "books": len(broadcast.books) if broadcast else 0,
        "reachable": sync.channel.reachable,
    }
