from readsync.models.book import Book, BookPosition, BookType, Quote, ReadingStatus
from readsync.models.goal import GoalType, ReadingGoal
from readsync.models.profile import Achievement, AchievementType, UserProfile
from readsync.models.session import ActiveReadingSession, ReadingSession
from readsync.models.streak import StreakEvent, StreakEventType

__all__ = [
    "Achievement",
    "AchievementType",
    "ActiveReadingSession",
    "Book",
    "BookPosition",
    "BookType",
    "GoalType",
    "Quote",
    "ReadingGoal",
    "ReadingSession",
    "ReadingStatus",
    "StreakEvent",
    "StreakEventType",
    "UserProfile",
]
