"""
Pytest fixtures for the call queue tests.

Every test gets its own SQLite database file, so concurrent sessions use
separate connections the way they would against PostgreSQL.
"""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from callqueue.db.session import build_engine, build_session_maker, create_schema
from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.models import Counter, CounterStatus, ServiceCategory, Ticket
from callqueue.services.events.events import BaseQueueEvent
from callqueue.services.tickets.ticket_service import TicketService

# 10:00 on 2026-03-10 in Asia/Shanghai
DEFAULT_NOW = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)


class RecordingBroadcaster:
    """Broadcaster test double that keeps every published event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event: BaseQueueEvent) -> None:
        await self.emit(event.event_name, event.payload())

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((str(event_name), payload))

    def named(self, event_name: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event_name]


class FakeClock:
    """Injectable clock returning a settable instant."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db_engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Fresh schema in a throwaway database file."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def session_maker(db_engine, broadcaster) -> async_sessionmaker[TrackedAsyncSession]:
    return build_session_maker(db_engine, broadcaster=broadcaster)


@pytest.fixture
async def session(session_maker) -> AsyncIterator[TrackedAsyncSession]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(DEFAULT_NOW)


@pytest.fixture
async def categories(session_maker) -> dict[str, ServiceCategory]:
    """Categories A (Deposits) and B (Loans)."""
    async with session_maker() as session:
        deposits = ServiceCategory(code="A", name="Deposits", english_name="Deposits", prefix="A")
        loans = ServiceCategory(code="B", name="Loans", english_name="Loans", prefix="B")
        session.add_all([deposits, loans])
        await session.commit()
        return {"A": deposits, "B": loans}


@pytest.fixture
async def counters(session_maker) -> dict[int, Counter]:
    """Open counters 1-3."""
    async with session_maker() as session:
        created = {
            number: Counter(counter_number=number, name=f"Counter {number}", status=CounterStatus.AVAILABLE)
            for number in (1, 2, 3)
        }
        session.add_all(created.values())
        await session.commit()
        return created


@pytest.fixture
def issue(session_maker, clock):
    """Issue a ticket in its own session: `await issue(category_id)`."""

    async def _issue(category_id: int) -> Ticket:
        async with session_maker() as session:
            return await TicketService(session, clock=clock).issue_ticket(category_id)

    return _issue


@pytest.fixture
def fetch(session_maker):
    """Re-read a row from the store in a new session: `await fetch(Ticket, id)`."""

    async def _fetch(model: type, record_id: int) -> Any:
        async with session_maker() as session:
            return await session.get(model, record_id)

    return _fetch
