"""Counter dispatch: binding tickets to counters.

Every entry point runs as one transaction. Rows are locked in a fixed order
(target counter, ticket, previously bound counter) and every write is a
compare-and-set on the row's version, so a request that loses a race sees
the winner's committed state instead of overwriting it. Broadcast events are
queued on the session and published only after commit.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import exists, update
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from callqueue.config import settings
from callqueue.db.row_lock import compare_and_set, lock_first, locked_transaction
from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.models.call_log import CallLogEntry
from callqueue.models.category import ServiceCategory
from callqueue.models.counter import Counter, CounterLastTicket
from callqueue.models.enums import CallType, CounterStatus, TicketStatus
from callqueue.models.ticket import Ticket, TicketSequence
from callqueue.services.categories.exceptions import CategoryNotFound
from callqueue.services.counters.exceptions import CounterClosed, CounterNotFound, DispatchConflict, NothingToRecall
from callqueue.services.events.events import TicketCalledEvent
from callqueue.services.tickets.exceptions import TicketNotCallable, TicketNotFound
from callqueue.services.tickets.lifecycle import transition_values
from callqueue.services.tickets.ticket_service import WAITING_ORDER
from callqueue.utils.datetime_utils import business_today, utc_now

logger = structlog.get_logger(__name__)

# Candidates tried by call_next before giving up with DispatchConflict
MAX_CANDIDATE_ATTEMPTS = 5


@dataclass(frozen=True)
class DispatchResult:
    """Denormalized view of a dispatch, used for the response and the broadcast."""

    ticket_id: int
    ticket_code: str
    counter_id: int
    counter_number: int
    category_id: int
    category_name: str
    call_type: CallType
    called_at: datetime
    # Counter the ticket was taken from by an operator re-call
    previous_counter_id: int | None = None

    def to_event(self) -> TicketCalledEvent:
        return TicketCalledEvent(
            ticket_code=self.ticket_code,
            counter_number=self.counter_number,
            category_name=self.category_name,
        )


@dataclass(frozen=True)
class NoCandidate:
    """call_next found no waiting ticket. Nothing was changed."""

    counter_id: int
    category_id: int


@dataclass(frozen=True)
class EndServiceResult:
    counter_id: int
    completed_ticket_code: str | None = None


class CounterDispatcher:
    """Dispatches tickets to counters.

    Usage:
        dispatcher = CounterDispatcher(session)
        result = await dispatcher.call_next(counter_id=1, category_id=2)
        if isinstance(result, NoCandidate):
            ...
    """

    def __init__(
        self,
        session: TrackedAsyncSession,
        *,
        clock: Callable[[], datetime] = utc_now,
        lock_timeout_ms: int | None = None,
        max_candidates: int = MAX_CANDIDATE_ATTEMPTS,
    ):
        self.session = session
        self.clock = clock
        self.lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else settings.dispatch_lock_timeout_ms
        self.max_candidates = max_candidates

    def _transaction(self, operation: str) -> AbstractAsyncContextManager[AsyncSession]:
        return locked_transaction(
            self.session,
            lock_timeout_ms=self.lock_timeout_ms,
            conflict_error=DispatchConflict,
            operation=operation,
        )

    async def call_next(self, counter_id: int, category_id: int) -> DispatchResult | NoCandidate:
        """Call the oldest waiting ticket of a category to the counter.

        Raises:
            CounterNotFound, CounterClosed, CategoryNotFound: invalid request
            DispatchConflict: lost too many races or timed out on a lock
        """
        async with self._transaction("call_next"):
            counter = await self._lock_open_counter(counter_id)
            category = await self._get_category(category_id)
            now = self.clock()

            ticket = await self._claim_oldest_waiting(counter, category_id, now)
            if ticket is None:
                logger.info("No waiting ticket", counter_id=counter_id, category_id=category_id)
                return NoCandidate(counter_id=counter_id, category_id=category_id)

            result = await self._bind(counter, ticket, category, CallType.NEXT, now, count_passed=True)

        logger.info(
            "Ticket called",
            ticket_code=result.ticket_code,
            counter_number=result.counter_number,
            call_type=result.call_type,
        )
        return result

    async def call_manual(self, counter_id: int, ticket_code: str) -> DispatchResult:
        """Call a specific ticket to the counter.

        A ticket already called elsewhere is moved to this counter; the
        counter it came from loses its ticket reference but stays busy until
        its service is ended.

        Raises:
            CounterNotFound, CounterClosed: invalid counter
            TicketNotFound: no ticket with that code
            TicketNotCallable: ticket is completed or cancelled
            DispatchConflict: lost a race or timed out on a lock
        """
        async with self._transaction("call_manual"):
            counter = await self._lock_open_counter(counter_id)
            ticket = await lock_first(
                self.session,
                Ticket,
                Ticket.ticket_code == ticket_code,
                order_by=(col(Ticket.id).desc(),),
            )
            if ticket is None:
                raise TicketNotFound(f"Ticket {ticket_code} not found")
            if not ticket.status.meta.is_callable:
                raise TicketNotCallable(ticket_code, ticket.status)

            category = await self._get_category(ticket.category_id)
            now = self.clock()
            first_call = ticket.status == TicketStatus.WAITING
            previous_counter_id = None
            if ticket.status == TicketStatus.CALLED and ticket.counter_id != counter.id:
                previous_counter_id = ticket.counter_id

            values = transition_values(ticket, TicketStatus.CALLED, at=now, counter_id=counter.id)
            if not await compare_and_set(self.session, ticket, **values):
                raise DispatchConflict(f"Ticket {ticket_code} changed concurrently, retry the operation")

            if previous_counter_id is not None:
                await self._release_counter(previous_counter_id, ticket, now)

            result = await self._bind(
                counter,
                ticket,
                category,
                CallType.MANUAL,
                now,
                count_passed=first_call,
                previous_counter_id=previous_counter_id,
            )

        logger.info(
            "Ticket called",
            ticket_code=result.ticket_code,
            counter_number=result.counter_number,
            call_type=result.call_type,
            previous_counter_id=previous_counter_id,
        )
        return result

    async def end_service(self, counter_id: int) -> EndServiceResult:
        """Complete the counter's current ticket and make the counter available.

        Idempotent: an idle available counter is left as it is. A closed
        counter is opened, so ending service always leaves it available.
        """
        async with self._transaction("end_service"):
            counter = await lock_first(self.session, Counter, Counter.id == counter_id)
            if counter is None:
                raise CounterNotFound(f"Counter {counter_id} not found")

            now = self.clock()
            completed_code = None
            if counter.current_ticket_id is not None:
                completed_code = await self._complete_ticket(counter.current_ticket_id, counter.id, now)

            idle = counter.status == CounterStatus.AVAILABLE and counter.current_ticket_id is None
            if not idle:
                ok = await compare_and_set(
                    self.session,
                    counter,
                    status=CounterStatus.AVAILABLE,
                    current_ticket_id=None,
                    current_category_id=None,
                    updated_at=now,
                )
                if not ok:
                    raise DispatchConflict(f"Counter {counter_id} changed concurrently, retry the operation")

        logger.info("Service ended", counter_id=counter_id, completed_ticket_code=completed_code)
        return EndServiceResult(counter_id=counter_id, completed_ticket_code=completed_code)

    async def recall(self, counter_id: int) -> DispatchResult:
        """Broadcast the counter's current ticket again. Changes nothing."""
        counter = await self.session.get(Counter, counter_id, populate_existing=True)
        if counter is None:
            raise CounterNotFound(f"Counter {counter_id} not found")
        if counter.current_ticket_id is None:
            raise NothingToRecall(f"Counter {counter.counter_number} is not serving a ticket")

        ticket = await self.session.get(Ticket, counter.current_ticket_id, populate_existing=True)
        if ticket is None:
            raise TicketNotFound(f"Ticket {counter.current_ticket_id} not found")
        category = await self._get_category(ticket.category_id)

        result = DispatchResult(
            ticket_id=ticket.id,  # type: ignore[arg-type]
            ticket_code=ticket.ticket_code,
            counter_id=counter.id,  # type: ignore[arg-type]
            counter_number=counter.counter_number,
            category_id=category.id,  # type: ignore[arg-type]
            category_name=category.name,
            call_type=CallType.MANUAL,
            called_at=ticket.called_at or self.clock(),
        )
        self.session.queue_event(result.to_event())
        await self.session.commit()
        logger.info("Ticket recalled", ticket_code=ticket.ticket_code, counter_number=counter.counter_number)
        return result

    async def _lock_open_counter(self, counter_id: int) -> Counter:
        counter = await lock_first(self.session, Counter, Counter.id == counter_id)
        if counter is None:
            raise CounterNotFound(f"Counter {counter_id} not found")
        if counter.status == CounterStatus.CLOSED:
            raise CounterClosed(f"Counter {counter.counter_number} is closed")
        return counter

    async def _get_category(self, category_id: int) -> ServiceCategory:
        category = await self.session.get(ServiceCategory, category_id)
        if category is None:
            raise CategoryNotFound(f"Category {category_id} not found")
        return category

    async def _claim_oldest_waiting(self, counter: Counter, category_id: int, now: datetime) -> Ticket | None:
        """Lock and call the oldest waiting ticket, skipping ones taken concurrently."""
        for attempt in range(1, self.max_candidates + 1):
            ticket = await lock_first(
                self.session,
                Ticket,
                Ticket.category_id == category_id,
                Ticket.status == TicketStatus.WAITING,
                order_by=WAITING_ORDER,
            )
            if ticket is None:
                # A locked read that waited on a row which stopped matching
                # returns nothing even if other rows still match
                if await self._has_waiting(category_id):
                    continue
                return None

            values = transition_values(ticket, TicketStatus.CALLED, at=now, counter_id=counter.id)
            if await compare_and_set(self.session, ticket, **values):
                return ticket
            logger.debug("Candidate taken by another counter", ticket_code=ticket.ticket_code, attempt=attempt)

        raise DispatchConflict(f"No waiting ticket could be claimed for category {category_id}, retry the operation")

    async def _has_waiting(self, category_id: int) -> bool:
        waiting = exists().where(col(Ticket.category_id) == category_id, col(Ticket.status) == TicketStatus.WAITING)
        statement = sa_select(waiting)
        result = await self.session.execute(statement)
        return bool(result.scalar())

    async def _complete_ticket(self, ticket_id: int, counter_id: int, now: datetime) -> str | None:
        """Complete the ticket a counter was serving. Returns its code if completed."""
        ticket = await lock_first(self.session, Ticket, Ticket.id == ticket_id)
        if ticket is None or ticket.status != TicketStatus.CALLED or ticket.counter_id != counter_id:
            return None

        values = transition_values(ticket, TicketStatus.COMPLETED, at=now)
        if not await compare_and_set(self.session, ticket, **values):
            raise DispatchConflict(f"Ticket {ticket.ticket_code} changed concurrently, retry the operation")
        return ticket.ticket_code

    async def _release_counter(self, counter_id: int, ticket: Ticket, now: datetime) -> None:
        """Drop a re-called ticket from the counter that was serving it."""
        previous = await lock_first(self.session, Counter, Counter.id == counter_id)
        if previous is None or previous.current_ticket_id != ticket.id:
            return
        if not await compare_and_set(self.session, previous, current_ticket_id=None, updated_at=now):
            raise DispatchConflict(f"Counter {counter_id} changed concurrently, retry the operation")
        logger.info(
            "Ticket moved away from counter",
            ticket_code=ticket.ticket_code,
            counter_number=previous.counter_number,
        )

    async def _bind(
        self,
        counter: Counter,
        ticket: Ticket,
        category: ServiceCategory,
        call_type: CallType,
        now: datetime,
        *,
        count_passed: bool,
        previous_counter_id: int | None = None,
    ) -> DispatchResult:
        """Make `ticket` the counter's current ticket, log the call and queue the broadcast."""
        if counter.current_ticket_id is not None and counter.current_ticket_id != ticket.id:
            await self._complete_ticket(counter.current_ticket_id, counter.id, now)  # type: ignore[arg-type]

        ok = await compare_and_set(
            self.session,
            counter,
            status=CounterStatus.BUSY,
            current_ticket_id=ticket.id,
            current_category_id=category.id,
            updated_at=now,
        )
        if not ok:
            raise DispatchConflict(f"Counter {counter.counter_number} changed concurrently, retry the operation")

        self.session.add(
            CallLogEntry(
                ticket_id=ticket.id,  # type: ignore[arg-type]
                counter_id=counter.id,  # type: ignore[arg-type]
                category_id=category.id,  # type: ignore[arg-type]
                call_type=call_type,
                created_at=now,
            )
        )
        await self._remember_last_ticket(counter.id, category.id, ticket.ticket_code, now)  # type: ignore[arg-type]
        if count_passed:
            await self._count_passed(category.id, now)  # type: ignore[arg-type]

        result = DispatchResult(
            ticket_id=ticket.id,  # type: ignore[arg-type]
            ticket_code=ticket.ticket_code,
            counter_id=counter.id,  # type: ignore[arg-type]
            counter_number=counter.counter_number,
            category_id=category.id,  # type: ignore[arg-type]
            category_name=category.name,
            call_type=call_type,
            called_at=ticket.called_at or now,
            previous_counter_id=previous_counter_id,
        )
        self.session.queue_event(result.to_event())
        return result

    async def _remember_last_ticket(self, counter_id: int, category_id: int, ticket_code: str, now: datetime) -> None:
        # Serialized by the counter row written just before
        statement = select(CounterLastTicket).where(
            CounterLastTicket.counter_id == counter_id,
            CounterLastTicket.category_id == category_id,
        )
        memo = (await self.session.execute(statement)).scalars().first()
        if memo is None:
            memo = CounterLastTicket(counter_id=counter_id, category_id=category_id)
            self.session.add(memo)
        memo.last_ticket_code = ticket_code
        memo.updated_at = now
        await self.session.flush()

    async def _count_passed(self, category_id: int, now: datetime) -> None:
        statement = (
            update(TicketSequence)
            .where(
                col(TicketSequence.category_id) == category_id,
                col(TicketSequence.sequence_date) == business_today(now),
            )
            .values(
                current_passed_number=col(TicketSequence.current_passed_number) + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)
