"""The daily reset transaction."""

from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from callqueue.models import Counter, CounterLastTicket, CounterStatus, Ticket, TicketSequence, TicketStatus
from callqueue.services.counters.dispatch_service import CounterDispatcher
from callqueue.services.reset.exceptions import ResetTransactionFailed
from callqueue.services.reset.reset_service import DailyResetService
from callqueue.services.settings.settings_service import SettingsService

pytestmark = pytest.mark.anyio

TODAY = date(2026, 3, 10)


@pytest.fixture
def reset(session_maker, clock):
    async def _reset(**kwargs):
        async with session_maker() as session:
            return await DailyResetService(session, clock=clock).perform_reset(**kwargs)

    return _reset


@pytest.fixture
async def busy_queue(categories, counters, issue, session_maker, clock):
    """A001 called at counter 1, A002 and B001 waiting."""
    await issue(categories["A"].id)
    await issue(categories["A"].id)
    await issue(categories["B"].id)
    async with session_maker() as session:
        await CounterDispatcher(session, clock=clock).call_next(counters[1].id, categories["A"].id)


async def _sequences(session_maker) -> list[TicketSequence]:
    async with session_maker() as session:
        result = await session.execute(select(TicketSequence).order_by(TicketSequence.category_id))
        return list(result.scalars().all())


async def test_reset_zeroes_sequences_and_clears_counters(busy_queue, counters, reset, session_maker, broadcaster):
    summary = await reset()

    assert summary.reset_date == TODAY
    assert summary.sequences_zeroed == 2
    assert summary.counters_cleared == 1

    for row in await _sequences(session_maker):
        assert row.sequence_date == TODAY
        assert (row.current_total_number, row.current_passed_number) == (0, 0)

    async with session_maker() as session:
        counter_rows = (await session.execute(select(Counter))).scalars().all()
        memos = (await session.execute(select(CounterLastTicket))).scalars().all()
    assert all(c.current_ticket_id is None for c in counter_rows)
    # Status is left alone; counter 1 must still end its service
    assert {c.counter_number: c.status for c in counter_rows}[1] == CounterStatus.BUSY
    assert memos and all(m.last_ticket_code is None for m in memos)

    assert broadcaster.named("ticket.dailyReset") == [
        {"date": "2026-03-10", "timestamp": "2026-03-10T02:00:00Z"}
    ]


async def test_reset_closes_open_tickets(busy_queue, reset, session_maker):
    summary = await reset()

    assert summary.tickets_cancelled == 2
    assert summary.tickets_completed == 1
    async with session_maker() as session:
        tickets = (await session.execute(select(Ticket).order_by(Ticket.id))).scalars().all()
    assert [(t.ticket_code, t.status) for t in tickets] == [
        ("A001", TicketStatus.COMPLETED),
        ("A002", TicketStatus.CANCELLED),
        ("B001", TicketStatus.CANCELLED),
    ]
    assert tickets[0].completed_at is not None


async def test_numbering_restarts_after_reset(busy_queue, categories, reset, issue, session_maker):
    await reset()
    ticket = await issue(categories["A"].id)
    assert ticket.ticket_code == "A001"

    async with session_maker() as session:
        current = (await session.execute(select(Ticket).where(Ticket.ticket_code == "A001"))).scalars().all()
    assert len(current) == 2


async def test_evening_resets_keep_one_row_per_category(categories, reset, issue, clock, session_maker):
    first_morning = datetime(2026, 3, 10, 1, 0, tzinfo=UTC)
    for day in range(3):
        # 09:00 and 20:00 in Asia/Shanghai
        clock.now = first_morning + timedelta(days=day)
        await issue(categories["A"].id)
        clock.now += timedelta(hours=11)
        summary = await reset()
        assert summary.sequences_deleted == (1 if day else 0)

    [row] = await _sequences(session_maker)
    assert row.category_id == categories["A"].id
    assert row.sequence_date == date(2026, 3, 12)
    assert row.current_total_number == 0


async def test_reset_repurposes_latest_past_row(categories, reset, session_maker):
    async with session_maker() as session:
        session.add_all(
            [
                TicketSequence(category_id=categories["B"].id, sequence_date=date(2026, 3, 8), current_total_number=4),
                TicketSequence(
                    category_id=categories["B"].id,
                    sequence_date=date(2026, 3, 9),
                    current_total_number=9,
                    current_passed_number=7,
                ),
                TicketSequence(category_id=categories["A"].id, sequence_date=TODAY, current_total_number=3),
                TicketSequence(category_id=categories["A"].id, sequence_date=date(2026, 3, 9), current_total_number=5),
            ]
        )
        await session.commit()

    summary = await reset()

    assert (summary.sequences_zeroed, summary.sequences_repurposed, summary.sequences_deleted) == (1, 1, 2)
    rows = await _sequences(session_maker)
    by_category = {}
    for row in rows:
        by_category.setdefault(row.category_id, []).append(row)

    [b_row] = by_category[categories["B"].id]
    assert b_row.sequence_date == TODAY
    assert (b_row.current_total_number, b_row.current_passed_number) == (0, 0)

    # A already had a row for today; its past row goes
    [a_row] = by_category[categories["A"].id]
    assert a_row.sequence_date == TODAY
    assert a_row.current_total_number == 0


async def test_failed_reset_leaves_state_untouched(
    busy_queue, counters, reset, session_maker, broadcaster, monkeypatch
):
    before = [(r.category_id, r.current_total_number, r.current_passed_number) for r in await _sequences(session_maker)]
    events_before = list(broadcaster.events)

    async def failing(self, now):
        raise OperationalError("UPDATE counter_last_tickets", {}, Exception("disk I/O error"))

    monkeypatch.setattr(DailyResetService, "_clear_last_ticket_memos", failing)

    with pytest.raises(ResetTransactionFailed):
        await reset()

    after = [(r.category_id, r.current_total_number, r.current_passed_number) for r in await _sequences(session_maker)]
    assert after == before
    async with session_maker() as session:
        counter = await session.get(Counter, counters[1].id)
        waiting = (await session.execute(select(Ticket).where(Ticket.status == TicketStatus.WAITING))).scalars().all()
    assert counter.current_ticket_id is not None
    assert len(waiting) == 2
    assert broadcaster.events == events_before


async def test_reset_records_scheduled_day(categories, reset, session_maker, clock):
    await reset(record_reset_day=TODAY)

    async with session_maker() as session:
        service = SettingsService(session)
        assert await service.get_last_reset_day() == TODAY
        assert await service.get_last_reset_at() == clock.now


async def test_manual_reset_does_not_record_day(categories, reset, session_maker):
    await reset()

    async with session_maker() as session:
        assert await SettingsService(session).get_last_reset_day() is None


async def test_reset_on_empty_store(categories, reset, broadcaster):
    summary = await reset()
    assert summary.sequences_zeroed == summary.sequences_repurposed == summary.counters_cleared == 0
    assert len(broadcaster.named("ticket.dailyReset")) == 1
