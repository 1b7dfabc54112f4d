"""Experience points for a reading session.

Both devices calculate XP independently, so this must stay a pure function of
its inputs.
"""

XP_PER_PAGE = 10

# (minimum minutes, bonus), longest first
DURATION_BONUSES: list[tuple[int, int]] = [
    (180, 200),
    (120, 100),
    (60, 50),
]


def duration_bonus(duration_minutes: int) -> int:
    for min_minutes, bonus in DURATION_BONUSES:
        if duration_minutes >= min_minutes:
            return bonus
    return 0


def calculate(pages_read: int, duration_minutes: int) -> int:
    """Return the XP award for a session. Sessions without forward progress earn nothing."""
    if pages_read <= 0:
        return 0
    return pages_read * XP_PER_PAGE + duration_bonus(max(0, duration_minutes))


def calculate_for_session(session) -> int:
    return calculate(session.pages_read, session.duration_minutes)
