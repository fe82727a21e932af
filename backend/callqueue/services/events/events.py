"""Broadcast event definitions.

Events are queued on the TrackedAsyncSession inside a transaction and
published after it commits. Payloads serialize with camelCase keys for the
display and counter front-ends.
"""

import datetime
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class QueueEventName(StrEnum):
    """Broadcast event names - serialize to the string value."""

    TICKET_CALLED = "ticket.called"
    DAILY_RESET = "ticket.dailyReset"
    COUNTER_STATUS_UPDATED = "counter.statusUpdated"


class BaseQueueEvent(BaseModel):
    """Base class for all broadcast events.

    Defines common interface:
    - event_name: channel event name
    - payload(): JSON-safe dict sent with the event
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    event_name: ClassVar[QueueEventName]

    def payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TicketCalledEvent(BaseQueueEvent):
    """A ticket was dispatched (or recalled) to a counter."""

    event_name: ClassVar[QueueEventName] = QueueEventName.TICKET_CALLED

    ticket_code: str
    counter_number: int
    category_name: str


class DailyResetEvent(BaseQueueEvent):
    """Per-day queue state was reset."""

    event_name: ClassVar[QueueEventName] = QueueEventName.DAILY_RESET

    reset_date: datetime.date = Field(alias="date")
    timestamp: datetime.datetime


class CounterStatusEvent(BaseQueueEvent):
    """A counter was opened or closed."""

    event_name: ClassVar[QueueEventName] = QueueEventName.COUNTER_STATUS_UPDATED

    counter_number: int
    status: str


# Union for API schema exposure
QueueEventUnion = TicketCalledEvent | DailyResetEvent | CounterStatusEvent
