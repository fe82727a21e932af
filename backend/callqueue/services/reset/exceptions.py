"""Daily reset exceptions."""

from callqueue.services.exceptions import ServiceError, ValidationError


class ScheduleConfigInvalid(ValidationError):
    """Reset time setting is not a valid "HH:MM" value."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid reset time {value!r}, expected HH:MM")


class ResetTransactionFailed(ServiceError):
    """Reset could not commit. Prior state is left intact."""

    pass
