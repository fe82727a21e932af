"""Translation of service exceptions to HTTP errors."""

from fastapi import HTTPException

from callqueue.services.categories.exceptions import CategoryCodeTaken, CategoryInactive
from callqueue.services.counters.exceptions import CounterBusy, CounterClosed, NothingToRecall
from callqueue.services.exceptions import ConflictError, NotFoundError, ServiceError
from callqueue.services.reset.exceptions import ResetTransactionFailed
from callqueue.services.tickets.exceptions import IllegalTransition, TicketNotCallable

# Business-rule violations caused by current state rather than bad input
STATE_ERRORS = (
    CategoryCodeTaken,
    CategoryInactive,
    CounterBusy,
    CounterClosed,
    IllegalTransition,
    NothingToRecall,
    TicketNotCallable,
)


def to_http_exception(error: ServiceError) -> HTTPException:
    """Map a service error to an HTTPException with a structured detail."""
    if isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, ConflictError) or isinstance(error, STATE_ERRORS):
        status_code = 409
    elif isinstance(error, ResetTransactionFailed):
        status_code = 503
    else:
        status_code = 400

    return HTTPException(
        status_code=status_code,
        detail={
            "error": type(error).__name__,
            "message": str(error),
            "retryable": isinstance(error, ConflictError),
        },
    )
