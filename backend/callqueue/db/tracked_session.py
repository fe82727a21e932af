"""TrackedAsyncSession with broadcast events published after commit."""

import asyncio
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

if TYPE_CHECKING:
    from callqueue.services.events.events import BaseQueueEvent
    from callqueue.services.events.publish_service import Broadcaster
    from callqueue.utils.background_tasks import BackgroundTasks

logger = structlog.get_logger(__name__)


class TrackedAsyncSession(AsyncSession):
    """AsyncSession that queues broadcast events for the current transaction.

    - Services call queue_event() while the transaction is open
    - Events are published only after commit() succeeds
    - rollback() and close() discard queued events
    - Publishing failures never affect the committed transaction

    Usage:
        session_maker = async_sessionmaker(engine, class_=TrackedAsyncSession, broadcaster=publisher)
        async with session_maker() as session:
            session.queue_event(TicketCalledEvent(...))
            await session.commit()  # Event published here
    """

    _broadcaster: "Broadcaster | None"
    _bg_tasks: "BackgroundTasks | None"
    _pending_events: list["BaseQueueEvent"]

    def __init__(
        self,
        *args: Any,
        broadcaster: "Broadcaster | None" = None,
        bg_tasks: "BackgroundTasks | None" = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._broadcaster = broadcaster
        self._bg_tasks = bg_tasks
        self._pending_events = []

    @property
    def broadcaster(self) -> "Broadcaster | None":
        return self._broadcaster

    def queue_event(self, event: "BaseQueueEvent") -> None:
        """Publish `event` once the current transaction commits."""
        self._pending_events.append(event)

    async def commit(self) -> None:
        """Commit transaction, then publish queued events."""
        await super().commit()
        await self._flush_events()

    async def rollback(self) -> None:
        self._pending_events.clear()
        await super().rollback()

    async def close(self) -> None:
        self._pending_events.clear()
        await super().close()

    async def _flush_events(self) -> None:
        """Publish all pending events. Called automatically by commit()."""
        if not self._pending_events:
            return

        events = list(self._pending_events)
        self._pending_events.clear()

        if not self._broadcaster:
            logger.debug("No broadcaster configured, skipping event publish", event_count=len(events))
            return

        coros = [self._broadcaster.publish(e) for e in events]

        if self._bg_tasks:
            # Non-blocking: schedule via BackgroundTasks
            for coro in coros:
                self._bg_tasks.run(coro)
        else:
            results = await asyncio.gather(*coros, return_exceptions=True)
            for event, result in zip(events, results, strict=True):
                if isinstance(result, Exception):
                    logger.error("Failed to publish event", event_name=event.event_name, error=str(result))
