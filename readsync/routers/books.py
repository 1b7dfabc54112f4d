import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import utcnow
from readsync.config import PHONE
from readsync.database import get_session
from readsync.id import make_uuid
from readsync.models import Book, BookPosition, Quote, ReadingStatus
from readsync.routers.deps import get_sync
from readsync.schemas.book import (
    BookCreate,
    BookResponse,
    BookUpdate,
    PositionCreate,
    PositionResponse,
    QuoteCreate,
    QuoteResponse,
    StatusUpdate,
)
from readsync.services.gamification import GamificationEngine
from readsync.services.goal_tracker import GoalTracker
from readsync.services.profile import get_profile
from readsync.sync.service import SyncService

router = APIRouter(prefix="/api/books", tags=["books"])


async def _get_book_or_404(session: AsyncSession, book_id: uuid.UUID) -> Book:
    book = await session.get(Book, book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.post("", response_model=BookResponse, status_code=201)
async def create_book(
    data: BookCreate,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    values = data.model_dump(exclude_none=True)
    values["id"] = data.id or make_uuid(data.title, data.author)
    if await session.get(Book, values["id"]) is not None:
        raise HTTPException(status_code=409, detail="Book already exists")
    book = Book(**values)
    if book.total_pages:
        book.current_page = min(book.current_page or 0, book.total_pages)
    if data.reading_status == ReadingStatus.CURRENTLY_READING:
        book.date_started = utcnow()
    session.add(book)
    await session.commit()
    await session.refresh(book)

    if book.reading_status == ReadingStatus.CURRENTLY_READING:
        await sync.broadcast_library(session)
    return book


@router.get("", response_model=list[BookResponse])
async def list_books(
    status: ReadingStatus | None = None,
    session: AsyncSession = Depends(get_session),
):
    stmt = select(Book).order_by(Book.date_added.desc())
    if status is not None:
        stmt = stmt.where(Book.reading_status == status)
    result = await session.execute(stmt)
    return result.scalars().all()


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    return await _get_book_or_404(session, book_id)


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: uuid.UUID,
    data: BookUpdate,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    book = await _get_book_or_404(session, book_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(book, key, value)
    book.current_page = book.clamp_page(book.current_page)
    await session.commit()
    await session.refresh(book)

    if book.reading_status == ReadingStatus.CURRENTLY_READING:
        await sync.broadcast_library(session)
    return book


@router.delete("/{book_id}", status_code=204)
async def delete_book(
    book_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    book = await _get_book_or_404(session, book_id)
    was_reading = book.reading_status == ReadingStatus.CURRENTLY_READING
    await session.delete(book)
    await session.commit()

    if was_reading:
        await sync.broadcast_library(session)


@router.put("/{book_id}/status", response_model=BookResponse)
async def set_status(
    book_id: uuid.UUID,
    data: StatusUpdate,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    book = await _get_book_or_404(session, book_id)
    previous = book.reading_status
    now = utcnow()

    book.reading_status = data.reading_status
    if data.reading_status == ReadingStatus.FINISHED:
        book.date_finished = now
        if book.total_pages:
            book.current_page = book.total_pages
    elif data.reading_status == ReadingStatus.CURRENTLY_READING:
        book.date_started = book.date_started or now
        book.date_finished = None

    profile = await get_profile(session)
    await GoalTracker(session).update_goals(profile, now)
    await GamificationEngine(session).check_achievements(profile)
    await session.commit()
    await session.refresh(book)

    if ReadingStatus.CURRENTLY_READING in (previous, data.reading_status) and previous != data.reading_status:
        await sync.broadcast_library(session)
    return book


@router.post("/{book_id}/position", response_model=PositionResponse, status_code=201)
async def mark_position(
    book_id: uuid.UUID,
    data: PositionCreate,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    book = await _get_book_or_404(session, book_id)
    if sync.device != PHONE:
        profile = await get_profile(session)
        if not profile.enable_watch_position_marking:
            raise HTTPException(status_code=409, detail="Position marking is turned off on the watch")
    position = BookPosition(
        book_id=book.id,
        page_number=book.clamp_page(data.page_number),
        line_number=data.line_number,
        note=data.note,
        timestamp=utcnow(),
    )
    session.add(position)
    await session.commit()
    await session.refresh(position)

    await sync.send_position(position)
    return position


@router.get("/{book_id}/position", response_model=PositionResponse)
async def last_position(book_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    await _get_book_or_404(session, book_id)
    result = await session.execute(
        select(BookPosition)
        .where(BookPosition.book_id == book_id)
        .order_by(BookPosition.timestamp.desc())
        .limit(1)
    )
    position = result.scalar_one_or_none()
    if position is None:
        raise HTTPException(status_code=404, detail="No position marked for this book")
    return position


@router.post("/{book_id}/quotes", response_model=QuoteResponse, status_code=201)
async def add_quote(
    book_id: uuid.UUID,
    data: QuoteCreate,
    session: AsyncSession = Depends(get_session),
    sync: SyncService = Depends(get_sync),
):
    await _get_book_or_404(session, book_id)
    quote = Quote(book_id=book_id, **data.model_dump())
    session.add(quote)
    await session.commit()
    await session.refresh(quote)

    result = await session.execute(
        select(Quote).where(Quote.book_id == book_id).order_by(Quote.date_added)
    )
    await sync.send_quotes(book_id, list(result.scalars().all()))
    return quote


@router.get("/{book_id}/quotes", response_model=list[QuoteResponse])
async def list_quotes(book_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    await _get_book_or_404(session, book_id)
    result = await session.execute(
        select(Quote).where(Quote.book_id == book_id).order_by(Quote.date_added)
    )
    return result.scalars().all()
