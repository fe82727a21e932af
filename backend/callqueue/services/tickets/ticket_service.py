"""Ticket issuing, queries and administrative cancellation."""

from collections.abc import Callable
from datetime import datetime

import structlog
from sqlalchemy import func
from sqlalchemy.exc import DBAPIError
from sqlmodel import col, select

from callqueue.config import settings
from callqueue.db.row_lock import compare_and_set, is_lock_conflict, lock_first, locked_transaction
from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.models.category import ServiceCategory
from callqueue.models.enums import TicketStatus
from callqueue.models.status import Flags
from callqueue.models.ticket import Ticket
from callqueue.services.categories.exceptions import CategoryInactive, CategoryNotFound
from callqueue.services.counters.exceptions import DispatchConflict
from callqueue.services.tickets.allocator import SequenceAllocator
from callqueue.services.tickets.exceptions import AllocationConflict, TicketNotFound
from callqueue.services.tickets.lifecycle import format_ticket_code, transition_values
from callqueue.utils.datetime_utils import business_today, utc_now
from callqueue.utils.request_retry import RequestRetryConfig, get_conflict_retrying

logger = structlog.get_logger(__name__)

# Oldest first; sequence number breaks ties between identical creation times
WAITING_ORDER = (col(Ticket.created_at), col(Ticket.sequence_number), col(Ticket.id))


class TicketService:
    """Service for issuing and querying tickets."""

    def __init__(
        self,
        session: TrackedAsyncSession,
        *,
        clock: Callable[[], datetime] = utc_now,
        number_width: int | None = None,
        max_attempts: int | None = None,
    ):
        self.session = session
        self.clock = clock
        self.number_width = number_width or settings.ticket_number_width
        self.max_attempts = max_attempts or settings.allocation_max_attempts

    async def issue_ticket(self, category_id: int) -> Ticket:
        """Allocate the next number for the category and store a waiting ticket.

        The whole transaction is retried on store serialization failures.

        Raises:
            CategoryNotFound, CategoryInactive: category cannot take tickets
            AllocationConflict: retries exhausted, caller may retry later
        """
        retry_config = RequestRetryConfig(
            max_attempts=self.max_attempts, min_wait=0.05, max_wait=0.5, multiplier=0.05
        )
        try:
            async for attempt in get_conflict_retrying(is_lock_conflict, retry_config):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "Retrying ticket allocation",
                            category_id=category_id,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    try:
                        ticket = await self._issue_once(category_id)
                    except BaseException:
                        await self.session.rollback()
                        raise
        except DBAPIError as e:
            if is_lock_conflict(e):
                logger.error("Ticket allocation failed after retries", category_id=category_id, error=str(e))
                raise AllocationConflict(f"Could not allocate a ticket number for category {category_id}") from e
            raise

        logger.info("Ticket issued", ticket_code=ticket.ticket_code, category_id=category_id)
        return ticket

    async def _issue_once(self, category_id: int) -> Ticket:
        category = await self.session.get(ServiceCategory, category_id, populate_existing=True)
        if category is None:
            raise CategoryNotFound(f"Category {category_id} not found")
        if not category.is_active:
            raise CategoryInactive(f"Category {category.code} is disabled")

        now = self.clock()
        day = business_today(now)
        number = await SequenceAllocator(self.session).next_number(category_id, day, now=now)
        ticket = Ticket(
            category_id=category_id,
            sequence_number=number,
            issue_date=day,
            ticket_code=format_ticket_code(category.prefix, number, self.number_width),
            status=TicketStatus.WAITING,
            created_at=now,
        )
        self.session.add(ticket)
        await self.session.commit()
        return ticket

    async def get_by_code(self, ticket_code: str) -> Ticket:
        """Most recently issued ticket with this code (codes repeat across days)."""
        statement = select(Ticket).where(Ticket.ticket_code == ticket_code).order_by(col(Ticket.id).desc())
        result = await self.session.execute(statement)
        ticket = result.scalars().first()
        if ticket is None:
            raise TicketNotFound(f"Ticket {ticket_code} not found")
        return ticket

    async def oldest_waiting(self, category_id: int) -> Ticket | None:
        statement = (
            select(Ticket)
            .where(Ticket.category_id == category_id, Ticket.status == TicketStatus.WAITING)
            .order_by(*WAITING_ORDER)
            .limit(1)
        )
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def waiting_count(self, category_id: int) -> int:
        statement = (
            select(func.count())
            .select_from(Ticket)
            .where(Ticket.category_id == category_id, Ticket.status == TicketStatus.WAITING)
        )
        result = await self.session.execute(statement)
        return result.scalar() or 0

    async def list_current(self, category_id: int | None = None) -> list[Ticket]:
        """Waiting and called tickets in queue order (display boards)."""
        statement = select(Ticket).where(col(Ticket.status).in_(sorted(TicketStatus.with_flag(Flags.CALLABLE))))
        if category_id is not None:
            statement = statement.where(Ticket.category_id == category_id)
        result = await self.session.execute(statement.order_by(*WAITING_ORDER))
        return list(result.scalars().all())

    async def cancel_ticket(self, ticket_code: str) -> Ticket:
        """Cancel a waiting ticket.

        Raises:
            TicketNotFound: no such ticket
            IllegalTransition: ticket is no longer waiting
            DispatchConflict: a concurrent dispatch touched the ticket first
        """
        async with locked_transaction(
            self.session,
            lock_timeout_ms=settings.dispatch_lock_timeout_ms,
            conflict_error=DispatchConflict,
            operation="cancel_ticket",
        ):
            ticket = await lock_first(
                self.session,
                Ticket,
                Ticket.ticket_code == ticket_code,
                order_by=(col(Ticket.id).desc(),),
            )
            if ticket is None:
                raise TicketNotFound(f"Ticket {ticket_code} not found")

            values = transition_values(ticket, TicketStatus.CANCELLED, at=self.clock())
            if not await compare_and_set(self.session, ticket, **values):
                raise DispatchConflict(f"Ticket {ticket_code} changed concurrently, retry the operation")

        logger.info("Ticket cancelled", ticket_code=ticket_code, ticket_id=ticket.id)
        return ticket
