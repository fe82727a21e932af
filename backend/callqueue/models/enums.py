"""Enum definitions for database models."""

from enum import StrEnum

from callqueue.models.status import Flags, Status, StatusEnum


class TicketStatus(StatusEnum):
    """Lifecycle of a ticket.

    Status flow:
        WAITING -> CALLED -> COMPLETED
        WAITING -> CANCELLED
    """

    WAITING = Status("waiting", Flags.QUEUED | Flags.CALLABLE, display="Waiting")
    CALLED = Status("called", Flags.IN_SERVICE | Flags.CALLABLE, display="Called")
    COMPLETED = Status("completed", Flags.FINAL, display="Completed")
    CANCELLED = Status("cancelled", Flags.FINAL, display="Cancelled")


class CounterStatus(StrEnum):
    """Status of a service counter (desk)."""

    CLOSED = "closed"
    AVAILABLE = "available"
    BUSY = "busy"


class CategoryStatus(StrEnum):
    """Service categories are soft-disabled, never deleted."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class CallType(StrEnum):
    """How a ticket was dispatched to a counter."""

    NEXT = "next"
    MANUAL = "manual"
