"""Ticket domain exceptions."""

from callqueue.models.enums import TicketStatus
from callqueue.services.exceptions import ConflictError, NotFoundError, ValidationError


class TicketNotFound(NotFoundError):
    """No ticket with the requested code."""

    pass


class TicketNotCallable(ValidationError):
    """Ticket exists but cannot be dispatched (already completed or cancelled)."""

    def __init__(self, ticket_code: str, status: TicketStatus):
        self.ticket_code = ticket_code
        self.status = status
        super().__init__(f"Ticket {ticket_code} is {status.value} and cannot be called")


class IllegalTransition(ValidationError):
    """Requested status change is not allowed by the ticket state machine."""

    def __init__(self, current: TicketStatus, target: TicketStatus):
        self.current = current
        self.target = target
        super().__init__(f"Illegal ticket transition {current.value} -> {target.value}")


class AllocationConflict(ConflictError):
    """Sequence number could not be allocated after bounded retry."""

    pass
