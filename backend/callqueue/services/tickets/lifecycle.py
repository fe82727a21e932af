"""Ticket state machine.

    WAITING -> CALLED      counter dispatch (sets called_at, counter_id)
    CALLED  -> CALLED      operator re-call to another counter (rebind)
    CALLED  -> COMPLETED   counter ends service (sets completed_at)
    WAITING -> CANCELLED   administrative cancellation

Transitions are returned as column values rather than applied in place, so
callers can write them with a version compare-and-set.
"""

from datetime import datetime

from callqueue.models.enums import TicketStatus
from callqueue.models.ticket import Ticket
from callqueue.services.tickets.exceptions import IllegalTransition
from callqueue.utils.datetime_utils import ensure_aware

ALLOWED_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.WAITING: frozenset({TicketStatus.CALLED, TicketStatus.CANCELLED}),
    TicketStatus.CALLED: frozenset({TicketStatus.CALLED, TicketStatus.COMPLETED}),
    TicketStatus.COMPLETED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(current: TicketStatus, target: TicketStatus) -> None:
    """Raise IllegalTransition unless `current -> target` is allowed."""
    if not can_transition(current, target):
        raise IllegalTransition(current, target)


def _not_before(at: datetime, earlier: datetime | None) -> datetime:
    # Keeps created <= called <= completed even if the clock steps back
    if earlier is None:
        return at
    earlier = ensure_aware(earlier)
    return at if ensure_aware(at) >= earlier else earlier


def transition_values(
    ticket: Ticket,
    target: TicketStatus,
    *,
    at: datetime,
    counter_id: int | None = None,
) -> dict[str, object]:
    """Column values moving `ticket` to `target`.

    Raises:
        IllegalTransition: the state machine forbids the move
        ValueError: CALLED requested without a counter
    """
    check_transition(ticket.status, target)
    values: dict[str, object] = {"status": target}

    if target == TicketStatus.CALLED:
        if counter_id is None:
            raise ValueError("counter_id is required to call a ticket")
        values["counter_id"] = counter_id
        values["called_at"] = _not_before(at, ticket.created_at)
    elif target == TicketStatus.COMPLETED:
        values["completed_at"] = _not_before(at, ticket.called_at)

    return values


def format_ticket_code(prefix: str, sequence_number: int, width: int) -> str:
    """Human-facing code: prefix followed by the zero-padded sequence number."""
    return f"{prefix}{sequence_number:0{width}d}"
