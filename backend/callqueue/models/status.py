"""String enums whose members carry queue metadata.

Usage:
    class TicketStatus(StatusEnum):
        WAITING = Status("waiting", Flags.QUEUED | Flags.CALLABLE, display="Waiting")
        COMPLETED = Status("completed", Flags.FINAL, display="Completed")

    TicketStatus.WAITING == "waiting"      # stored as plain text
    TicketStatus.WAITING.meta.is_callable  # True
"""

from dataclasses import dataclass
from enum import IntFlag, StrEnum, auto
from typing import Any


class Flags(IntFlag):
    """Queue metadata of a status.

    QUEUED     - waiting for a counter
    IN_SERVICE - bound to a counter
    CALLABLE   - may be dispatched to a counter
    FINAL      - no further transitions
    """

    NONE = 0
    QUEUED = auto()
    IN_SERVICE = auto()
    CALLABLE = auto()
    FINAL = auto()


# Flag -> flags it cannot be combined with
INCOMPATIBLE_FLAGS: dict[Flags, Flags] = {
    Flags.FINAL: Flags.QUEUED | Flags.IN_SERVICE | Flags.CALLABLE,
    Flags.QUEUED: Flags.IN_SERVICE,
}


def validate_flags(value: Flags) -> None:
    """Raise ValueError for a contradictory flag combination."""
    for flag, incompatible in INCOMPATIBLE_FLAGS.items():
        clash = value & incompatible
        if value & flag and clash:
            clash_name = (clash.name or str(clash)).replace("|", ", ")
            raise ValueError(f"{flag.name} cannot be combined with {clash_name}")


@dataclass(frozen=True, slots=True)
class Status:
    value: str
    flags: Flags = Flags.NONE
    display: str = ""

    def __post_init__(self) -> None:
        validate_flags(self.flags)

    @property
    def is_queued(self) -> bool:
        return bool(self.flags & Flags.QUEUED)

    @property
    def is_in_service(self) -> bool:
        return bool(self.flags & Flags.IN_SERVICE)

    @property
    def is_callable(self) -> bool:
        return bool(self.flags & Flags.CALLABLE)

    @property
    def is_final(self) -> bool:
        return bool(self.flags & Flags.FINAL)


_metadata: dict[tuple[type, str], Status] = {}


class StatusEnum(StrEnum):
    """StrEnum accepting `Status` members; the string value is what gets stored."""

    def __new__(cls, status: Status | str) -> "StatusEnum":
        value = status.value if isinstance(status, Status) else status
        if isinstance(status, Status):
            _metadata[(cls, value)] = status
        member = str.__new__(cls, value)
        member._value_ = value
        return member

    @property
    def meta(self) -> Status:
        return _metadata.get((type(self), self._value_), Status(self._value_))

    @classmethod
    def with_flag(cls, flag: Flags) -> "frozenset[Any]":
        """Members whose metadata has `flag` set."""
        return frozenset(member for member in cls if member.meta.flags & flag)
