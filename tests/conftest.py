import os
import tempfile

import pytest
import pytest_asyncio

# The app modules read configuration at import time
os.environ.setdefault(
    "DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'booking_ledger_test.db')}"
)
os.environ["RABBITMQ_URL"] = ""
os.environ["RUN_WORKER"] = "false"

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app.database import get_session, init_models  # noqa: E402
from app.ledger import BookingLedger  # noqa: E402
from app.models import Booking, Event  # noqa: E402
from app.notifications import booking_payload, get_publisher  # noqa: E402
from app.routes import get_ledger  # noqa: E402


class FakePublisher:
    def __init__(self):
        self.sent = []

    async def notify(self, result):
        self.sent.append(booking_payload(result))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def ledger(session_maker):
    return BookingLedger(session_maker)


@pytest.fixture
def make_event(session_maker):
    async def _make(total_seats: int = 10, title: str = "Jazz Night", location: str = "Main Hall"):
        async with session_maker() as session:
            event = Event(
                title=title,
                location=location,
                total_seats=total_seats,
                available_seats=total_seats,
                version=1,
            )
            session.add(event)
            await session.commit()
            return event.id

    return _make


@pytest.fixture
def read_event(session_maker):
    async def _read(event_id: int) -> Event:
        async with session_maker() as session:
            return await session.get(Event, event_id)

    return _read


@pytest.fixture
def read_bookings(session_maker):
    async def _read(event_id: int):
        async with session_maker() as session:
            result = await session.execute(
                select(Booking).where(Booking.event_id == event_id).order_by(Booking.id)
            )
            return list(result.scalars().all())

    return _read


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest_asyncio.fixture
async def client(session_maker, ledger, publisher):
    from app.main import app

    async def _session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_publisher] = lambda: publisher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
