from fastapi import APIRouter, Depends, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.database import get_session
from readsync.routers.deps import get_sync
from readsync.services.gamification import GamificationEngine
from readsync.services.goodreads import parse_goodreads_csv
from readsync.services.import_service import import_goodreads_rows
from readsync.services.profile import get_profile
from readsync.sync.service import SyncService

router = APIRouter(prefix="/api/import", tags=["import"])


@router.post("/goodreads")
async def import_goodreads(
    file: UploadFile,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    content = (await file.read()).decode("utf-8-sig")
    rows = parse_goodreads_csv(content)
    result = await import_goodreads_rows(session, rows)

    # Finished-book achievements may unlock from the backfill
    profile = await get_profile(session)
    await GamificationEngine(session).check_achievements(profile)
    await session.commit()
    await sync.broadcast_library(session)

    return {
        "books_created": result.books_created,
        "books_updated": result.books_updated,
        "sessions_created": result.sessions_created,
        "skipped": result.skipped,
    }
