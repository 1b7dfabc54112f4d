import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.database import get_session
from readsync.errors import ReadSyncError
from readsync.models import Achievement
from readsync.routers.deps import get_sync, http_error
from readsync.schemas.profile import (
    AchievementResponse,
    PardonResponse,
    ProfileResponse,
    SettingsUpdate,
    StreakStatusResponse,
)
from readsync.services.gamification import GamificationEngine
from readsync.services.goal_tracker import GoalTracker
from readsync.services.profile import get_profile
from readsync.services.streak_service import StreakService
from readsync.services.streaks import PardonEligibility
from readsync.sync.service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["profile"])


def _pardon_response(eligibility: PardonEligibility) -> PardonResponse:
    return PardonResponse(
        status=eligibility.status,
        missed_day=eligibility.missed_day,
        deadline=eligibility.deadline,
        next_available=eligibility.next_available,
    )


@router.get("", response_model=ProfileResponse)
async def read_profile(session: AsyncSession = Depends(get_session)):
    try:
        return await get_profile(session)
    except ReadSyncError as e:
        raise http_error(e) from e


@router.get("/streak", response_model=StreakStatusResponse)
async def streak_status(session: AsyncSession = Depends(get_session)):
    try:
        profile = await get_profile(session)
    except ReadSyncError as e:
        raise http_error(e) from e
    status = await StreakService(session).status(profile)
    return StreakStatusResponse(
        current_streak=status.current_streak,
        longest_streak=status.longest_streak,
        last_reading_date=status.last_reading_date,
        deadline=status.deadline,
        streaks_paused=status.streaks_paused,
        pardon=_pardon_response(status.pardon),
    )


@router.post("/streak/pardon", response_model=ProfileResponse)
async def apply_pardon(
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        profile = await get_profile(session)
        profile = await StreakService(session).apply_pardon(profile)
    except ReadSyncError as e:
        raise http_error(e) from e
    await sync.send_profile_stats(profile)
    return profile


@router.get("/achievements", response_model=list[AchievementResponse])
async def list_achievements(session: AsyncSession = Depends(get_session)):
    try:
        profile = await get_profile(session)
    except ReadSyncError as e:
        raise http_error(e) from e
    result = await session.execute(
        select(Achievement)
        .where(Achievement.profile_id == profile.id)
        .order_by(Achievement.unlocked_at)
    )
    return result.scalars().all()


@router.put("/settings", response_model=ProfileResponse)
async def update_settings(
    data: SettingsUpdate,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    """Save display settings. On a failed save the previous values are restored."""
    try:
        profile = await get_profile(session)
    except ReadSyncError as e:
        raise http_error(e) from e

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    previous = {key: getattr(profile, key) for key in changes}
    for key, value in changes.items():
        setattr(profile, key, value)
    try:
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        for key, value in previous.items():
            setattr(profile, key, value)
        logger.exception("Failed to save profile settings")
        raise HTTPException(status_code=500, detail="Settings could not be saved and were reverted")

    await sync.send_profile_settings(profile)
    return profile


@router.post("/recalculate", response_model=ProfileResponse)
async def recalculate(
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    try:
        profile = await get_profile(session)
    except ReadSyncError as e:
        raise http_error(e) from e
    await GamificationEngine(session).recalculate_stats(profile)
    await GoalTracker(session).update_goals(profile)
    await session.commit()
    await sync.send_profile_stats(profile)
    return profile
