"""Backfill books and finished reads from a Goodreads export."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from readsync.id import make_uuid
from readsync.models import Book, ReadingSession, ReadingStatus
from readsync.services.goodreads import GoodreadsRow

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    books_created: int = 0
    books_updated: int = 0
    sessions_created: int = 0
    skipped: int = 0


async def import_goodreads_rows(session: AsyncSession, rows: list[GoodreadsRow]) -> ImportResult:
    """Upsert books by title/author id and log one imported session per finished read.

    Imported sessions never count toward stats and carry no XP, so a backfill
    cannot inflate streaks or level.
    """
    result = ImportResult()

    for row in rows:
        if not row.title or not row.author:
            result.skipped += 1
            continue

        book_id = make_uuid(row.title, row.author)
        book = await session.get(Book, book_id)
        if book is None:
            book = Book(
                id=book_id,
                title=row.title,
                author=row.author,
                isbn=row.isbn,
                total_pages=row.total_pages,
                current_page=0,
                reading_status=row.reading_status,
                rating=row.rating,
                notes="",
            )
            if row.date_added is not None:
                book.date_added = row.date_added
            session.add(book)
            result.books_created += 1
        else:
            book.isbn = row.isbn or book.isbn
            book.total_pages = row.total_pages or book.total_pages
            book.rating = row.rating or book.rating
            if book.reading_status != ReadingStatus.CURRENTLY_READING:
                book.reading_status = row.reading_status
            result.books_updated += 1

        if row.reading_status == ReadingStatus.FINISHED and row.date_read is not None:
            book.date_finished = row.date_read
            if book.total_pages:
                book.current_page = book.total_pages

            session_id = make_uuid(row.title, row.author, row.date_read.date().isoformat())
            if await session.get(ReadingSession, session_id) is None:
                session.add(
                    ReadingSession(
                        id=session_id,
                        book_id=book_id,
                        start_date=row.date_added or row.date_read,
                        end_date=row.date_read,
                        start_page=0,
                        end_page=book.total_pages or 0,
                        duration_minutes=0,
                        xp_earned=0,
                        counts_toward_stats=False,
                        is_imported=True,
                        xp_awarded=True,
                    )
                )
                result.sessions_created += 1
        await session.flush()

    await session.commit()
    logger.info(
        "Goodreads import: %d created, %d updated, %d sessions, %d skipped",
        result.books_created, result.books_updated, result.sessions_created, result.skipped,
    )
    return result
