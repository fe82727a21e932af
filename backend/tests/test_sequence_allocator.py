"""Ticket number allocation."""

import asyncio
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from callqueue.models import Ticket, TicketSequence, TicketStatus
from callqueue.services.categories.category_service import CategoryService
from callqueue.services.categories.exceptions import CategoryInactive, CategoryNotFound
from callqueue.services.tickets.allocator import SequenceAllocator
from callqueue.services.tickets.exceptions import AllocationConflict
from callqueue.services.tickets.ticket_service import TicketService

pytestmark = pytest.mark.anyio


async def test_first_tickets_of_the_day_are_numbered_from_one(categories, issue, session_maker):
    first = await issue(categories["A"].id)
    second = await issue(categories["A"].id)

    assert first.ticket_code == "A001"
    assert second.ticket_code == "A002"
    assert (first.sequence_number, second.sequence_number) == (1, 2)
    assert first.status == TicketStatus.WAITING
    assert first.issue_date == date(2026, 3, 10)

    async with session_maker() as session:
        rows = (await session.execute(select(TicketSequence))).scalars().all()
    assert len(rows) == 1
    assert rows[0].current_total_number == 2
    assert rows[0].current_passed_number == 0


async def test_concurrent_allocations_are_gapless_and_unique(categories, issue):
    tickets = await asyncio.gather(*(issue(categories["A"].id) for _ in range(10)))

    numbers = sorted(t.sequence_number for t in tickets)
    assert numbers == list(range(1, 11))
    assert len({t.ticket_code for t in tickets}) == 10


async def test_categories_have_independent_sequences(categories, issue):
    a1 = await issue(categories["A"].id)
    b1 = await issue(categories["B"].id)
    a2 = await issue(categories["A"].id)

    assert [a1.ticket_code, b1.ticket_code, a2.ticket_code] == ["A001", "B001", "A002"]


async def test_new_business_day_starts_a_new_sequence(categories, issue, clock, session_maker):
    await issue(categories["A"].id)
    await issue(categories["A"].id)

    clock.advance(days=1)
    next_day = await issue(categories["A"].id)

    assert next_day.ticket_code == "A001"
    assert next_day.issue_date == date(2026, 3, 11)
    async with session_maker() as session:
        days = (await session.execute(select(TicketSequence.sequence_date))).scalars().all()
    assert sorted(days) == [date(2026, 3, 10), date(2026, 3, 11)]


async def test_business_day_follows_reference_timezone(categories, issue, clock):
    # 23:30 UTC is already the next morning in Shanghai
    clock.now = clock.now.replace(hour=23, minute=30)
    ticket = await issue(categories["A"].id)
    assert ticket.issue_date == date(2026, 3, 11)


async def test_code_width_is_configurable(categories, session_maker, clock):
    async with session_maker() as session:
        ticket = await TicketService(session, clock=clock, number_width=4).issue_ticket(categories["B"].id)
    assert ticket.ticket_code == "B0001"


async def test_disabled_category_refuses_tickets(categories, issue, session_maker):
    async with session_maker() as session:
        await CategoryService(session).set_active(categories["B"].id, False)

    with pytest.raises(CategoryInactive):
        await issue(categories["B"].id)


async def test_unknown_category(categories, issue):
    with pytest.raises(CategoryNotFound):
        await issue(999)


async def test_serialization_failures_surface_as_allocation_conflict(categories, session_maker, monkeypatch):
    calls = 0

    async def locked(self, category_id, day, *, now=None):
        nonlocal calls
        calls += 1
        raise OperationalError("INSERT INTO ticket_sequences", {}, Exception("database is locked"))

    monkeypatch.setattr(SequenceAllocator, "next_number", locked)

    async with session_maker() as session:
        with pytest.raises(AllocationConflict) as exc_info:
            await TicketService(session, max_attempts=3).issue_ticket(categories["A"].id)

    assert calls == 3
    assert exc_info.value.retryable is True
    async with session_maker() as session:
        assert (await session.execute(select(Ticket))).scalars().all() == []


async def test_transient_conflict_is_retried(categories, session_maker, monkeypatch, clock):
    original = SequenceAllocator.next_number
    calls = 0

    async def flaky(self, category_id, day, *, now=None):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise OperationalError("INSERT INTO ticket_sequences", {}, Exception("database is locked"))
        return await original(self, category_id, day, now=now)

    monkeypatch.setattr(SequenceAllocator, "next_number", flaky)

    async with session_maker() as session:
        ticket = await TicketService(session, clock=clock).issue_ticket(categories["A"].id)

    assert calls == 2
    assert ticket.ticket_code == "A001"


async def test_other_database_errors_are_not_retried(categories, session_maker, monkeypatch):
    calls = 0

    async def broken(self, category_id, day, *, now=None):
        nonlocal calls
        calls += 1
        raise OperationalError("INSERT INTO ticket_sequences", {}, Exception("no such table: ticket_sequences"))

    monkeypatch.setattr(SequenceAllocator, "next_number", broken)

    async with session_maker() as session:
        with pytest.raises(OperationalError):
            await TicketService(session).issue_ticket(categories["A"].id)
    assert calls == 1
