"""End active sessions that were left running."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import as_utc, utcnow
from readsync.models import ActiveReadingSession
from readsync.services.profile import get_profile

if TYPE_CHECKING:
    from readsync.sync.service import SyncService

logger = logging.getLogger(__name__)


async def end_stale_sessions(
    db: AsyncSession, sync: SyncService, now: datetime | None = None
) -> list[uuid.UUID]:
    """Delete active sessions idle longer than the profile's auto-end window.

    The peer is told first so it does not keep rendering the session.
    """
    profile = await get_profile(db)
    if not profile.auto_end_session_enabled:
        return []

    now = as_utc(now or utcnow())
    result = await db.execute(select(ActiveReadingSession))
    ended = []
    for active in result.scalars().all():
        if not active.should_auto_end(profile.auto_end_session_hours, now):
            continue
        await sync.send_session_end(active.id, now)
        await db.delete(active)
        ended.append(active.id)
        logger.info("Auto-ended stale active session %s (idle since %s)", active.id, active.last_updated)

    if ended:
        await db.commit()
    return ended
