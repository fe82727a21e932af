"""Counter dispatch: call next, manual call, end service and recall."""

import asyncio

import pytest
from sqlmodel import select

from callqueue.models import (
    CallLogEntry,
    CallType,
    Counter,
    CounterLastTicket,
    CounterStatus,
    Ticket,
    TicketSequence,
    TicketStatus,
)
from callqueue.services.counters.counter_service import CounterService
from callqueue.services.counters.dispatch_service import CounterDispatcher, DispatchResult, NoCandidate
from callqueue.services.counters.exceptions import (
    CounterBusy,
    CounterClosed,
    CounterNotFound,
    DispatchConflict,
    NothingToRecall,
)
from callqueue.services.tickets.exceptions import TicketNotCallable, TicketNotFound
from callqueue.services.tickets.ticket_service import TicketService
from callqueue.utils.datetime_utils import ensure_aware

pytestmark = pytest.mark.anyio


@pytest.fixture
def dispatch(session_maker, clock):
    """Run one dispatcher operation in its own session: `await dispatch("call_next", 1, 2)`."""

    async def _dispatch(operation: str, *args):
        async with session_maker() as session:
            dispatcher = CounterDispatcher(session, clock=clock)
            return await getattr(dispatcher, operation)(*args)

    return _dispatch


async def test_call_next_binds_oldest_waiting_ticket(categories, counters, issue, dispatch, fetch, broadcaster):
    a1 = await issue(categories["A"].id)
    await issue(categories["A"].id)

    result = await dispatch("call_next", counters[1].id, categories["A"].id)

    assert isinstance(result, DispatchResult)
    assert result.ticket_code == "A001"
    assert result.counter_number == 1
    assert result.category_name == "Deposits"
    assert result.call_type == CallType.NEXT

    ticket = await fetch(Ticket, a1.id)
    counter = await fetch(Counter, counters[1].id)
    assert ticket.status == TicketStatus.CALLED
    assert ticket.counter_id == counter.id
    assert ticket.called_at is not None
    assert counter.status == CounterStatus.BUSY
    assert counter.current_ticket_id == a1.id
    assert counter.current_category_id == categories["A"].id

    assert broadcaster.named("ticket.called") == [
        {"ticketCode": "A001", "counterNumber": 1, "categoryName": "Deposits"}
    ]


async def test_second_counter_gets_no_candidate(categories, counters, issue, dispatch, fetch, broadcaster):
    await issue(categories["A"].id)

    first = await dispatch("call_next", counters[1].id, categories["A"].id)
    second = await dispatch("call_next", counters[2].id, categories["A"].id)

    assert isinstance(first, DispatchResult) and first.ticket_code == "A001"
    assert second == NoCandidate(counter_id=counters[2].id, category_id=categories["A"].id)
    counter_2 = await fetch(Counter, counters[2].id)
    assert counter_2.status == CounterStatus.AVAILABLE
    assert counter_2.current_ticket_id is None
    assert len(broadcaster.named("ticket.called")) == 1


async def test_call_next_ignores_other_categories(categories, counters, issue, dispatch):
    await issue(categories["B"].id)
    result = await dispatch("call_next", counters[1].id, categories["A"].id)
    assert isinstance(result, NoCandidate)


async def test_call_next_records_call_log_memo_and_passed_count(categories, counters, issue, dispatch, session_maker):
    ticket = await issue(categories["A"].id)
    await dispatch("call_next", counters[1].id, categories["A"].id)

    async with session_maker() as session:
        log = (await session.execute(select(CallLogEntry))).scalars().all()
        memo = (await session.execute(select(CounterLastTicket))).scalars().one()
        sequence = (await session.execute(select(TicketSequence))).scalars().one()

    assert [(e.ticket_id, e.counter_id, e.call_type) for e in log] == [(ticket.id, counters[1].id, CallType.NEXT)]
    assert (memo.counter_id, memo.category_id, memo.last_ticket_code) == (counters[1].id, categories["A"].id, "A001")
    assert sequence.current_total_number == 1
    assert sequence.current_passed_number == 1


async def test_call_next_completes_previous_ticket_of_the_counter(categories, counters, issue, dispatch, fetch):
    a1 = await issue(categories["A"].id)
    a2 = await issue(categories["A"].id)

    await dispatch("call_next", counters[1].id, categories["A"].id)
    result = await dispatch("call_next", counters[1].id, categories["A"].id)

    assert result.ticket_code == "A002"
    first = await fetch(Ticket, a1.id)
    assert first.status == TicketStatus.COMPLETED
    assert first.completed_at is not None
    counter = await fetch(Counter, counters[1].id)
    assert counter.current_ticket_id == a2.id


async def test_concurrent_call_next_never_shares_a_ticket(categories, counters, issue, dispatch, session_maker):
    for _ in range(3):
        await issue(categories["A"].id)

    results = await asyncio.gather(
        *(dispatch("call_next", counters[n].id, categories["A"].id) for n in (1, 2, 3))
    )

    codes = [r.ticket_code for r in results if isinstance(r, DispatchResult)]
    assert sorted(codes) == ["A001", "A002", "A003"]
    async with session_maker() as session:
        bound = (await session.execute(select(Counter.current_ticket_id))).scalars().all()
    assert len(set(bound)) == 3


async def test_concurrent_call_next_for_a_single_ticket(categories, counters, issue, dispatch, fetch):
    ticket = await issue(categories["A"].id)

    results = await asyncio.gather(
        dispatch("call_next", counters[1].id, categories["A"].id),
        dispatch("call_next", counters[2].id, categories["A"].id),
    )

    winners = [r for r in results if isinstance(r, DispatchResult)]
    assert len(winners) == 1
    assert sum(isinstance(r, NoCandidate) for r in results) == 1
    stored = await fetch(Ticket, ticket.id)
    assert stored.counter_id == winners[0].counter_id


async def test_concurrent_call_next_and_manual_call_for_one_ticket(categories, counters, issue, dispatch, fetch):
    ticket = await issue(categories["A"].id)

    results = await asyncio.gather(
        dispatch("call_next", counters[1].id, categories["A"].id),
        dispatch("call_manual", counters[2].id, "A001"),
        return_exceptions=True,
    )

    # Either call may win, a manual call may also take the ticket over afterwards
    assert all(isinstance(r, DispatchResult | NoCandidate | DispatchConflict) for r in results)
    assert any(isinstance(r, DispatchResult) for r in results)

    stored = await fetch(Ticket, ticket.id)
    holders = [n for n in (1, 2) if (await fetch(Counter, counters[n].id)).current_ticket_id == ticket.id]
    assert len(holders) == 1
    assert counters[holders[0]].id == stored.counter_id
    assert stored.status == TicketStatus.CALLED


async def test_call_manual_waiting_ticket(categories, counters, issue, dispatch, fetch, session_maker):
    await issue(categories["A"].id)
    a2 = await issue(categories["A"].id)

    result = await dispatch("call_manual", counters[2].id, "A002")

    assert result.ticket_code == "A002"
    assert result.call_type == CallType.MANUAL
    assert result.previous_counter_id is None
    ticket = await fetch(Ticket, a2.id)
    assert ticket.status == TicketStatus.CALLED
    async with session_maker() as session:
        entry = (await session.execute(select(CallLogEntry))).scalars().one()
    assert entry.call_type == CallType.MANUAL


async def test_call_manual_moves_called_ticket_to_another_counter(
    categories, counters, issue, dispatch, fetch, broadcaster, session_maker
):
    ticket = await issue(categories["A"].id)
    await dispatch("call_next", counters[1].id, categories["A"].id)

    result = await dispatch("call_manual", counters[2].id, "A001")

    assert result.previous_counter_id == counters[1].id
    stored = await fetch(Ticket, ticket.id)
    assert stored.status == TicketStatus.CALLED
    assert stored.counter_id == counters[2].id

    counter_1 = await fetch(Counter, counters[1].id)
    counter_2 = await fetch(Counter, counters[2].id)
    assert counter_2.current_ticket_id == ticket.id
    assert counter_1.current_ticket_id is None
    # Still has to end its service
    assert counter_1.status == CounterStatus.BUSY

    async with session_maker() as session:
        sequence = (await session.execute(select(TicketSequence))).scalars().one()
    assert sequence.current_passed_number == 1
    assert [p["counterNumber"] for p in broadcaster.named("ticket.called")] == [1, 2]

    await dispatch("end_service", counters[1].id)
    stored = await fetch(Ticket, ticket.id)
    assert stored.status == TicketStatus.CALLED
    assert (await fetch(Counter, counters[1].id)).status == CounterStatus.AVAILABLE


async def test_call_manual_rejects_unknown_and_finished_tickets(categories, counters, issue, dispatch, session_maker):
    await issue(categories["A"].id)
    await issue(categories["A"].id)

    with pytest.raises(TicketNotFound):
        await dispatch("call_manual", counters[1].id, "A999")

    await dispatch("call_next", counters[1].id, categories["A"].id)
    await dispatch("end_service", counters[1].id)
    with pytest.raises(TicketNotCallable) as exc_info:
        await dispatch("call_manual", counters[2].id, "A001")
    assert exc_info.value.status == TicketStatus.COMPLETED

    async with session_maker() as session:
        await TicketService(session).cancel_ticket("A002")
    with pytest.raises(TicketNotCallable):
        await dispatch("call_manual", counters[2].id, "A002")


async def test_closed_counter_cannot_call(categories, counters, issue, dispatch, session_maker):
    await issue(categories["A"].id)
    async with session_maker() as session:
        await CounterService(session).close_counter(counters[3].id)

    with pytest.raises(CounterClosed):
        await dispatch("call_next", counters[3].id, categories["A"].id)
    with pytest.raises(CounterClosed):
        await dispatch("call_manual", counters[3].id, "A001")
    with pytest.raises(CounterNotFound):
        await dispatch("call_next", 999, categories["A"].id)


async def test_busy_counter_cannot_be_closed(categories, counters, issue, dispatch, session_maker):
    await issue(categories["A"].id)
    await dispatch("call_next", counters[1].id, categories["A"].id)

    async with session_maker() as session:
        with pytest.raises(CounterBusy):
            await CounterService(session).close_counter(counters[1].id)


async def test_opening_and_closing_broadcasts_counter_status(counters, session_maker, broadcaster):
    async with session_maker() as session:
        service = CounterService(session)
        await service.close_counter(counters[2].id)
        # Already closed, nothing changes
        await service.close_counter(counters[2].id)
        await service.open_counter(counters[2].id)

    assert broadcaster.named("counter.statusUpdated") == [
        {"counterNumber": 2, "status": "closed"},
        {"counterNumber": 2, "status": "available"},
    ]


async def test_end_service_is_idempotent(categories, counters, issue, dispatch, fetch):
    ticket = await issue(categories["A"].id)
    await dispatch("call_next", counters[1].id, categories["A"].id)

    first = await dispatch("end_service", counters[1].id)
    after_first = await fetch(Counter, counters[1].id)
    second = await dispatch("end_service", counters[1].id)
    after_second = await fetch(Counter, counters[1].id)

    assert first.completed_ticket_code == "A001"
    assert second.completed_ticket_code is None
    for counter in (after_first, after_second):
        assert counter.status == CounterStatus.AVAILABLE
        assert counter.current_ticket_id is None
    assert after_first.version == after_second.version
    assert (await fetch(Ticket, ticket.id)).status == TicketStatus.COMPLETED


async def test_end_service_opens_a_closed_counter(counters, dispatch, fetch, session_maker):
    async with session_maker() as session:
        await CounterService(session).close_counter(counters[2].id)

    result = await dispatch("end_service", counters[2].id)
    after_first = await fetch(Counter, counters[2].id)
    await dispatch("end_service", counters[2].id)
    after_second = await fetch(Counter, counters[2].id)

    assert result.completed_ticket_code is None
    assert after_first.status == CounterStatus.AVAILABLE
    assert after_first.current_ticket_id is None
    assert after_first.version == after_second.version


async def test_ticket_timestamps_are_ordered(categories, counters, issue, dispatch, fetch, clock):
    ticket = await issue(categories["A"].id)
    clock.advance(minutes=3)
    await dispatch("call_next", counters[1].id, categories["A"].id)
    clock.advance(minutes=7)
    await dispatch("end_service", counters[1].id)

    stored = await fetch(Ticket, ticket.id)
    created, called, completed = (ensure_aware(t) for t in (stored.created_at, stored.called_at, stored.completed_at))
    assert created <= called <= completed
    assert completed - created == clock.now - ticket.created_at


async def test_recall_rebroadcasts_without_changes(categories, counters, issue, dispatch, fetch, broadcaster):
    await issue(categories["A"].id)
    await dispatch("call_next", counters[1].id, categories["A"].id)
    before = await fetch(Counter, counters[1].id)

    result = await dispatch("recall", counters[1].id)

    assert result.ticket_code == "A001"
    assert len(broadcaster.named("ticket.called")) == 2
    after = await fetch(Counter, counters[1].id)
    assert after.version == before.version

    with pytest.raises(NothingToRecall):
        await dispatch("recall", counters[2].id)


async def test_counter_listing_shows_current_ticket(categories, counters, issue, dispatch, session_maker):
    await issue(categories["A"].id)
    await dispatch("call_next", counters[2].id, categories["A"].id)

    async with session_maker() as session:
        views = await CounterService(session).list_counters()

    assert [v.counter.counter_number for v in views] == [1, 2, 3]
    assert [v.current_ticket_code for v in views] == [None, "A001", None]
    assert views[1].current_category_name == "Deposits"
