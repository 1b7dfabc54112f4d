"""The per-install UserProfile singleton.

The profile is created exactly once, at application startup, under a lock.
Every other code path only reads it and fails loudly if startup was skipped.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.errors import ProfileMissingError
from readsync.models import UserProfile

logger = logging.getLogger(__name__)

_init_lock = asyncio.Lock()


async def ensure_profile(session: AsyncSession) -> UserProfile:
    async with _init_lock:
        result = await session.execute(select(UserProfile).order_by(UserProfile.created_at).limit(1))
        profile = result.scalar_one_or_none()
        if profile is not None:
            return profile

        profile = UserProfile()
        session.add(profile)
        await session.commit()
        logger.info("Created user profile %s", profile.id)
        return profile


async def get_profile(session: AsyncSession) -> UserProfile:
    result = await session.execute(select(UserProfile).order_by(UserProfile.created_at).limit(1))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise ProfileMissingError("User profile has not been initialized")
    return profile
