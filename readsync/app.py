import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from readsync.config import DEVICE_NAME, PEER_TIMEOUT, PEER_URL
from readsync.database import async_session, init_db
from readsync.routers import books, goals, import_export, profile, sessions, sync
from readsync.services.cleanup import end_stale_sessions
from readsync.services.gamification import GamificationEngine
from readsync.services.profile import ensure_profile
from readsync.sync.channel import HttpChannel, LoopbackChannel
from readsync.sync.service import SyncService

logger = logging.getLogger(__name__)


async def startup(app: FastAPI) -> None:
    """Create tables, the one profile, and settle state left over from the last run."""
    await init_db()
    async with async_session() as session:
        profile = await ensure_profile(session)
        await end_stale_sessions(session, app.state.sync)
        await GamificationEngine(session).refresh_streak(profile)
        await session.commit()
    logger.info("ReadSync ready as %s (peer: %s)", app.state.sync.device, PEER_URL or "none")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    yield
    await app.state.sync.close()


def create_app(sync_service: SyncService | None = None) -> FastAPI:
    app = FastAPI(title="ReadSync", version="0.1.0", lifespan=lifespan)
    if sync_service is None:
        channel = HttpChannel(PEER_URL, timeout=PEER_TIMEOUT) if PEER_URL else LoopbackChannel()
        sync_service = SyncService(channel=channel, device=DEVICE_NAME)
    app.state.sync = sync_service

    app.include_router(books.router)
    app.include_router(sessions.router)
    app.include_router(profile.router)
    app.include_router(goals.router)
    app.include_router(sync.router)
    app.include_router(import_export.router)
    return app


app = create_app()
