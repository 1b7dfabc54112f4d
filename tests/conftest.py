from contextlib import asynccontextmanager
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from readsync.app import create_app
from readsync.config import PHONE, WATCH
from readsync.database import Base, get_session
from readsync.id import make_uuid
from readsync.models import Book, ReadingStatus
from readsync.services.profile import ensure_profile, get_profile
from readsync.sync.channel import LoopbackChannel, connect
from readsync.sync.debounce import Debouncer
from readsync.sync.service import SyncService
import readsync.models  # noqa: F401

TEST_DB_URL = "sqlite+aiosqlite://"  # in-memory

engine = create_async_engine(TEST_DB_URL, echo=False)
TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with TestSession() as s:
        await ensure_profile(s)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def session():
    async with TestSession() as s:
        yield s


@pytest.fixture
async def profile(session):
    return await get_profile(session)


@pytest.fixture
async def sync_service():
    service = SyncService(
        channel=LoopbackChannel(),
        session_factory=TestSession,
        device=PHONE,
        debouncer=Debouncer(0.01),
    )
    yield service
    await service.close()


@asynccontextmanager
async def _api_client(sync):
    app = create_app(sync)

    async def override_session():
        async with TestSession() as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def client(sync_service):
    async with _api_client(sync_service) as c:
        yield c


async def _add_book(session, title="Dune", author="Frank Herbert", total_pages=300, current_page=0, **kwargs):
    book = Book(
        id=make_uuid(title, author),
        title=title,
        author=author,
        total_pages=total_pages,
        current_page=current_page,
        reading_status=kwargs.pop("reading_status", ReadingStatus.CURRENTLY_READING),
        **kwargs,
    )
    session.add(book)
    await session.commit()
    return book


@pytest.fixture
def make_book():
    """Insert a currently-reading book straight into a device database."""
    return _add_book


# --- two devices in one process ---


@dataclass
class Device:
    name: str
    engine: AsyncEngine
    sessions: async_sessionmaker
    sync: SyncService

    def session(self) -> AsyncSession:
        return self.sessions()


async def _make_device(name: str) -> Device:
    device_engine = create_async_engine(TEST_DB_URL, echo=False)
    async with device_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(device_engine, class_=AsyncSession, expire_on_commit=False)
    async with sessions() as s:
        await ensure_profile(s)
    sync = SyncService(session_factory=sessions, device=name, debouncer=Debouncer(0.01))
    return Device(name=name, engine=device_engine, sessions=sessions, sync=sync)


@pytest.fixture
async def devices():
    phone = await _make_device(PHONE)
    watch = await _make_device(WATCH)
    connect(phone.sync, watch.sync)
    yield phone, watch
    for device in (phone, watch):
        await device.sync.close()
        await device.engine.dispose()


class RecordingChannel:
    """Channel that keeps everything sent instead of delivering it."""

    def __init__(self) -> None:
        self.reachable = True
        self.sent = []
        self.contexts = []

    async def send(self, message) -> bool:
        if not self.reachable:
            return False
        self.sent.append(message)
        return True

    async def update_context(self, broadcast) -> None:
        self.contexts.append(broadcast)

    async def close(self) -> None:
        pass

    def kinds(self) -> list[str]:
        return [m.kind for m in self.sent]


@pytest.fixture
async def recorder():
    service = SyncService(
        channel=RecordingChannel(),
        session_factory=TestSession,
        device=PHONE,
        debouncer=Debouncer(0.01),
    )
    yield service
    await service.close()


@pytest.fixture
async def recording_client(recorder):
    """API client whose peer messages land in ``recorder.channel``."""
    async with _api_client(recorder) as c:
        yield c
