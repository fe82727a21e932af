"""Real-time broadcast events and publishing."""

from callqueue.services.events.events import (
    BaseQueueEvent,
    CounterStatusEvent,
    DailyResetEvent,
    QueueEventName,
    TicketCalledEvent,
)
from callqueue.services.events.publish_service import Broadcaster, MercurePublishService

__all__ = [
    "BaseQueueEvent",
    "Broadcaster",
    "CounterStatusEvent",
    "DailyResetEvent",
    "MercurePublishService",
    "QueueEventName",
    "TicketCalledEvent",
]
