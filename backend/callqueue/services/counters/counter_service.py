"""Counter administration: listing, creating, opening and closing counters."""

from dataclasses import dataclass

import structlog
from sqlmodel import col, select

from callqueue.config import settings
from callqueue.db.row_lock import compare_and_set, lock_first, locked_transaction
from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.models.category import ServiceCategory
from callqueue.models.counter import Counter
from callqueue.models.enums import CounterStatus
from callqueue.models.ticket import Ticket
from callqueue.services.counters.exceptions import CounterBusy, CounterNotFound, DispatchConflict
from callqueue.services.events.events import CounterStatusEvent
from callqueue.services.exceptions import ValidationError
from callqueue.utils.datetime_utils import utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CounterView:
    """Counter with the code and category of the ticket it is serving."""

    counter: Counter
    current_ticket_code: str | None
    current_category_name: str | None


class CounterService:
    """Service for counter administration.

    Opening and closing only toggles `closed <-> available`; a busy counter
    must end its service before it can be closed.
    """

    def __init__(self, session: TrackedAsyncSession):
        self.session = session

    async def list_counters(self) -> list[CounterView]:
        statement = (
            select(Counter, Ticket.ticket_code, ServiceCategory.name)
            .outerjoin(Ticket, col(Ticket.id) == col(Counter.current_ticket_id))
            .outerjoin(ServiceCategory, col(ServiceCategory.id) == col(Counter.current_category_id))
            .order_by(col(Counter.counter_number))
        )
        result = await self.session.execute(statement)
        return [
            CounterView(counter=counter, current_ticket_code=code, current_category_name=category_name)
            for counter, code, category_name in result.all()
        ]

    async def get_counter(self, counter_id: int) -> Counter:
        counter = await self.session.get(Counter, counter_id)
        if counter is None:
            raise CounterNotFound(f"Counter {counter_id} not found")
        return counter

    async def create_counter(self, counter_number: int, name: str | None = None) -> Counter:
        existing = await self.session.execute(select(Counter.id).where(Counter.counter_number == counter_number))
        if existing.first() is not None:
            raise ValidationError(f"Counter number {counter_number} is already in use")

        counter = Counter(counter_number=counter_number, name=name or f"Counter {counter_number}")
        self.session.add(counter)
        await self.session.commit()
        logger.info("Counter created", counter_id=counter.id, counter_number=counter_number)
        return counter

    async def open_counter(self, counter_id: int) -> Counter:
        """closed -> available. Open counters are left as they are."""
        return await self._set_status(counter_id, CounterStatus.AVAILABLE)

    async def close_counter(self, counter_id: int) -> Counter:
        """available -> closed.

        Raises:
            CounterBusy: the counter has not ended its service
        """
        return await self._set_status(counter_id, CounterStatus.CLOSED)

    async def _set_status(self, counter_id: int, target: CounterStatus) -> Counter:
        async with locked_transaction(
            self.session,
            lock_timeout_ms=settings.dispatch_lock_timeout_ms,
            conflict_error=DispatchConflict,
            operation=f"set_counter_{target.value}",
        ):
            counter = await lock_first(self.session, Counter, Counter.id == counter_id)
            if counter is None:
                raise CounterNotFound(f"Counter {counter_id} not found")
            if counter.status == CounterStatus.BUSY:
                if target == CounterStatus.CLOSED:
                    raise CounterBusy(f"Counter {counter.counter_number} is busy, end service first")
                return counter
            if counter.status == target:
                return counter

            if not await compare_and_set(self.session, counter, status=target, updated_at=utc_now()):
                raise DispatchConflict(f"Counter {counter_id} changed concurrently, retry the operation")
            self.session.queue_event(CounterStatusEvent(counter_number=counter.counter_number, status=target.value))

        logger.info("Counter status changed", counter_id=counter_id, status=target)
        return counter
