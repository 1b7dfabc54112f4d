"""Streak state machine, stats recalculation and achievements."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from readsync.clock import as_utc
from readsync.models import Achievement, AchievementType, ReadingSession, StreakEvent, StreakEventType
from readsync.services.gamification import GamificationEngine

NOW = datetime(2025, 6, 15, 18, 0, tzinfo=UTC)


async def _events(session, event_type=None):
    stmt = select(StreakEvent).order_by(StreakEvent.created_at)
    if event_type is not None:
        stmt = stmt.where(StreakEvent.type == event_type)
    return (await session.execute(stmt)).scalars().all()


async def _add_session(session, book, start, pages=10, minutes=20, **kwargs):
    reading = ReadingSession(
        book_id=book.id,
        start_date=start,
        end_date=start + timedelta(minutes=minutes),
        start_page=0,
        end_page=pages,
        duration_minutes=minutes,
        xp_earned=pages * 10,
        xp_awarded=True,
        **kwargs,
    )
    session.add(reading)
    await session.flush()
    return reading


# --- update_streak ---

@pytest.mark.asyncio
async def test_first_session_starts_streak(session, profile):
    await GamificationEngine(session).update_streak(profile, NOW, NOW)
    assert profile.current_streak == 1
    assert profile.longest_streak == 1
    types = {e.type for e in await _events(session)}
    assert types == {StreakEventType.STARTED, StreakEventType.DAY}


@pytest.mark.asyncio
async def test_reading_day_after_last_increments_by_one(session, profile):
    profile.last_reading_date = NOW - timedelta(days=1)
    profile.current_streak = 4
    profile.longest_streak = 4

    await GamificationEngine(session).update_streak(profile, NOW, NOW)

    assert profile.current_streak == 5
    assert profile.longest_streak == 5
    days = await _events(session, StreakEventType.DAY)
    assert len(days) == 1
    assert days[0].streak_length == 5


@pytest.mark.asyncio
async def test_same_day_leaves_streak_unchanged(session, profile):
    profile.last_reading_date = NOW - timedelta(hours=3)
    profile.current_streak = 4

    await GamificationEngine(session).update_streak(profile, NOW, NOW)

    assert profile.current_streak == 4
    assert await _events(session) == []


@pytest.mark.asyncio
async def test_gap_of_three_days_loses_streak(session, profile):
    profile.last_reading_date = NOW - timedelta(days=3)
    profile.current_streak = 6
    profile.longest_streak = 9

    await GamificationEngine(session).update_streak(profile, NOW, NOW)

    assert profile.current_streak == 1
    assert profile.longest_streak == 9
    lost = await _events(session, StreakEventType.LOST)
    assert len(lost) == 1
    assert lost[0].streak_length == 6
    # Dated on the first missed day, not when reading resumed
    assert as_utc(lost[0].date) == datetime(2025, 6, 13, tzinfo=UTC)
    assert len(await _events(session, StreakEventType.STARTED)) == 1


@pytest.mark.asyncio
async def test_future_session_date_is_clamped(session, profile):
    profile.last_reading_date = NOW - timedelta(days=1)
    profile.current_streak = 2

    await GamificationEngine(session).update_streak(profile, NOW + timedelta(days=2), NOW)

    assert profile.current_streak == 3
    assert profile.last_reading_date <= NOW + timedelta(seconds=60)


@pytest.mark.asyncio
async def test_paused_streaks_are_frozen(session, profile):
    profile.streaks_paused = True
    profile.last_reading_date = NOW - timedelta(days=5)
    profile.current_streak = 3

    engine = GamificationEngine(session)
    await engine.update_streak(profile, NOW, NOW)
    await engine.refresh_streak(profile, NOW)

    assert profile.current_streak == 3


# --- refresh_streak ---

@pytest.mark.asyncio
async def test_refresh_keeps_streak_inside_pardon_window(session, profile):
    profile.last_reading_date = NOW - timedelta(days=2)
    profile.current_streak = 5

    eligibility = await GamificationEngine(session).refresh_streak(profile, NOW)

    assert eligibility.status == "available"
    assert profile.current_streak == 5
    assert await _events(session, StreakEventType.LOST) == []


@pytest.mark.asyncio
async def test_refresh_breaks_expired_streak(session, profile):
    profile.last_reading_date = NOW - timedelta(days=3)
    profile.current_streak = 5

    eligibility = await GamificationEngine(session).refresh_streak(profile, NOW)

    assert eligibility.status == "expired"
    assert profile.current_streak == 0
    lost = await _events(session, StreakEventType.LOST)
    assert [e.streak_length for e in lost] == [5]


@pytest.mark.asyncio
async def test_refresh_breaks_streak_during_cooldown(session, profile):
    profile.last_reading_date = NOW - timedelta(days=2)
    profile.last_pardon_date = NOW - timedelta(days=2)
    profile.current_streak = 5

    eligibility = await GamificationEngine(session).refresh_streak(profile, NOW)

    assert eligibility.status == "cooldown"
    assert profile.current_streak == 0


@pytest.mark.asyncio
async def test_refresh_is_idempotent(session, profile):
    profile.last_reading_date = NOW - timedelta(days=4)
    profile.current_streak = 2

    engine = GamificationEngine(session)
    await engine.refresh_streak(profile, NOW)
    await engine.refresh_streak(profile, NOW + timedelta(hours=1))

    assert len(await _events(session, StreakEventType.LOST)) == 1


# --- recalculate_stats ---

@pytest.mark.asyncio
async def test_recalculate_from_history(session, profile, make_book):
    book = await make_book(session)
    for days_ago in (3, 2, 1):
        await _add_session(session, book, NOW - timedelta(days=days_ago), pages=10)
    await _add_session(session, book, NOW - timedelta(days=10), pages=50, counts_toward_stats=False)
    profile.total_xp = 9999

    await GamificationEngine(session).recalculate_stats(profile, NOW)

    assert profile.total_xp == 300
    assert profile.current_streak == 3
    assert profile.longest_streak == 3
    assert profile.last_reading_date.date() == (NOW - timedelta(days=1)).date()


@pytest.mark.asyncio
async def test_recalculate_counts_pardoned_days(session, profile, make_book):
    book = await make_book(session)
    await _add_session(session, book, NOW - timedelta(days=3))
    await _add_session(session, book, NOW - timedelta(days=1))
    session.add(StreakEvent(date=NOW - timedelta(days=2), type=StreakEventType.SAVED, streak_length=2))
    await session.flush()

    await GamificationEngine(session).recalculate_stats(profile, NOW)

    assert profile.current_streak == 3


@pytest.mark.asyncio
async def test_recalculate_with_old_history_has_no_current_streak(session, profile, make_book):
    book = await make_book(session)
    await _add_session(session, book, NOW - timedelta(days=6))
    await _add_session(session, book, NOW - timedelta(days=5))

    await GamificationEngine(session).recalculate_stats(profile, NOW)

    assert profile.current_streak == 0
    assert profile.longest_streak == 2


# --- achievements ---

@pytest.mark.asyncio
async def test_achievements_unlock_once(session, profile, make_book):
    book = await make_book(session)
    await _add_session(session, book, NOW, pages=120, minutes=190)

    engine = GamificationEngine(session)
    first = await engine.check_achievements(profile)
    second = await engine.check_achievements(profile)

    unlocked = {a.type for a in first}
    assert AchievementType.HUNDRED_PAGES in unlocked
    assert AchievementType.HUNDRED_PAGES_IN_DAY in unlocked
    assert AchievementType.MARATHON_READER in unlocked
    assert second == []
    stored = (await session.execute(select(Achievement))).scalars().all()
    assert len(stored) == len(first)


@pytest.mark.asyncio
async def test_award_xp_never_goes_negative(session, profile):
    engine = GamificationEngine(session)
    engine.award_xp(profile, 50)
    engine.award_xp(profile, -80)
    assert profile.total_xp == 0
