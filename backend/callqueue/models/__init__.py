"""Database models.

Importing this package registers every table with SQLModel.metadata.
"""

from callqueue.models.call_log import CallLogEntry
from callqueue.models.category import ServiceCategory
from callqueue.models.counter import Counter, CounterLastTicket
from callqueue.models.enums import CallType, CategoryStatus, CounterStatus, TicketStatus
from callqueue.models.setting import Setting
from callqueue.models.ticket import Ticket, TicketSequence

__all__ = [
    "CallLogEntry",
    "CallType",
    "CategoryStatus",
    "Counter",
    "CounterLastTicket",
    "CounterStatus",
    "ServiceCategory",
    "Setting",
    "Ticket",
    "TicketSequence",
    "TicketStatus",
]
