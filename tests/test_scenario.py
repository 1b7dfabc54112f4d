"""End to end: a session started on the phone, paused and finished, as the watch sees it."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from readsync.id import make_uuid
from readsync.models import ActiveReadingSession, Book, GoalType, ReadingGoal, ReadingSession
from readsync.services import xp
from readsync.services.active_session import ActiveSessionService
from readsync.services.profile import get_profile

T0 = datetime(2025, 6, 15, 20, 0, tzinfo=UTC)
DUNE = make_uuid("Dune", "Frank Herbert")


@pytest.mark.asyncio
async def test_read_pause_resume_finish(devices, make_book):
    phone, watch = devices
    for device in (phone, watch):
        async with device.session() as s:
            await make_book(s, total_pages=300, current_page=10)

    async with phone.session() as s:
        goal = ReadingGoal(
            profile_id=(await get_profile(s)).id,
            type=GoalType.PAGES_PER_DAY,
            target_value=30,
            current_value=0,
            start_date=T0 - timedelta(hours=1),
            end_date=T0 + timedelta(days=1),
            is_completed=False,
        )
        s.add(goal)
        await s.commit()

    async with phone.session() as db:
        service = ActiveSessionService(db, phone.sync)
        active = await service.start(DUNE, now=T0)
        await service.pause(now=T0 + timedelta(seconds=45))

        async with watch.session() as w:
            mirrored = (await w.execute(select(ActiveReadingSession))).scalar_one()
            assert mirrored.is_paused is True
            assert mirrored.elapsed_seconds(T0 + timedelta(minutes=5)) == pytest.approx(45, abs=1)

        await service.resume(now=T0 + timedelta(seconds=145))
        await service.adjust_page(page=25, now=T0 + timedelta(minutes=9))
        saved = await service.complete(now=T0 + timedelta(minutes=10))

    # 600s wall clock less 100s paused
    assert saved.duration_minutes == 8
    assert saved.pages_read == 15
    assert saved.xp_earned == xp.calculate(15, 8)

    for device in (phone, watch):
        async with device.session() as s:
            assert (await s.execute(select(ActiveReadingSession))).scalars().all() == []
            stored = await s.get(ReadingSession, saved.id)
            assert (stored.start_page, stored.end_page, stored.duration_minutes) == (10, 25, 8)
            assert (await s.get(Book, DUNE)).current_page == 25
            profile = await get_profile(s)
            assert profile.total_xp == saved.xp_earned
            assert profile.current_streak == 1

    assert watch.sync.is_ended(active.id)

    async with phone.session() as s:
        pages_goal = await s.get(ReadingGoal, goal.id)
    assert pages_goal.current_value == 15
    assert pages_goal.is_completed is False
