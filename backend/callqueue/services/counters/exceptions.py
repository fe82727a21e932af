"""Counter domain exceptions."""

from callqueue.services.exceptions import ConflictError, NotFoundError, ValidationError


class CounterNotFound(NotFoundError):
    """Counter not found."""

    pass


class CounterClosed(ValidationError):
    """Counter is closed and cannot call tickets."""

    pass


class CounterBusy(ValidationError):
    """Counter is serving a ticket; end service first."""

    pass


class DispatchConflict(ConflictError):
    """Dispatch lost a race or timed out waiting for a row lock. Safe to retry."""

    pass


class NothingToRecall(ValidationError):
    """Counter is not serving a ticket."""

    pass
