import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import as_utc, utcnow
from readsync.database import get_session
from readsync.errors import ReadSyncError
from readsync.models import ReadingGoal
from readsync.routers.deps import http_error
from readsync.schemas.goal import GoalCreate, GoalResponse
from readsync.services.goal_tracker import GoalTracker
from readsync.services.profile import get_profile

router = APIRouter(prefix="/api/goals", tags=["goals"])


@router.post("", response_model=GoalResponse, status_code=201)
async def create_goal(data: GoalCreate, session: AsyncSession = Depends(get_session)):
    try:
        profile = await get_profile(session)
    except ReadSyncError as e:
        raise http_error(e) from e
    start = as_utc(data.start_date or utcnow())
    end = as_utc(data.end_date)
    if end <= start:
        raise HTTPException(status_code=422, detail="end_date must be after start_date")
    goal = ReadingGoal(
        profile_id=profile.id,
        type=data.type,
        target_value=data.target_value,
        start_date=start,
        end_date=end,
    )
    session.add(goal)
    await GoalTracker(session).update_goals(profile)
    await session.commit()
    await session.refresh(goal)
    return goal


@router.get("", response_model=list[GoalResponse])
async def list_goals(session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(ReadingGoal).order_by(ReadingGoal.created_at))
    return result.scalars().all()


@router.delete("/{goal_id}", status_code=204)
async def delete_goal(goal_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    goal = await session.get(ReadingGoal, goal_id)
    if goal is None:
        raise HTTPException(status_code=404, detail="Goal not found")
    await session.delete(goal)
    await session.commit()


@router.post("/refresh", response_model=list[GoalResponse])
async def refresh_goals(session: AsyncSession = Depends(get_session)):
    try:
        profile = await get_profile(session)
    except ReadSyncError as e:
        raise http_error(e) from e
    await GoalTracker(session).update_goals(profile)
    await session.commit()
    result = await session.execute(select(ReadingGoal).order_by(ReadingGoal.created_at))
    return result.scalars().all()
