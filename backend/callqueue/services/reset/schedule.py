"""Reset time parsing and occurrence arithmetic in the business timezone.

Occurrences are computed with zoneinfo: a wall-clock time that falls into a
DST gap resolves to the instant after the gap, an ambiguous one to its first
occurrence (fold=0).
"""

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import NamedTuple

import structlog

from callqueue.services.reset.exceptions import ScheduleConfigInvalid
from callqueue.utils.datetime_utils import ensure_aware

logger = structlog.get_logger(__name__)

RESET_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

FALLBACK_RESET_TIME = "00:00"


@dataclass(frozen=True, order=True)
class ResetTime:
    """Local wall-clock time of the daily reset."""

    hour: int
    minute: int

    @classmethod
    def parse(cls, value: object) -> "ResetTime":
        """Parse "HH:MM" (the hour may have one digit).

        Raises:
            ScheduleConfigInvalid: value is missing or malformed
        """
        if not isinstance(value, str):
            raise ScheduleConfigInvalid(value)
        match = RESET_TIME_PATTERN.match(value.strip())
        if match is None:
            raise ScheduleConfigInvalid(value)
        return cls(hour=int(match.group(1)), minute=int(match.group(2)))

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def resolve_reset_time(value: str | None, default: str = FALLBACK_RESET_TIME) -> ResetTime:
    """Parse a stored setting, falling back to `default` with a warning."""
    try:
        return ResetTime.parse(value)
    except ScheduleConfigInvalid as e:
        logger.warning("Invalid reset time setting, using default", value=value, default=default, error=str(e))
    try:
        return ResetTime.parse(default)
    except ScheduleConfigInvalid:
        logger.warning("Invalid default reset time, using fallback", default=default, fallback=FALLBACK_RESET_TIME)
        return ResetTime.parse(FALLBACK_RESET_TIME)


class Occurrence(NamedTuple):
    """One scheduled firing: the business day it belongs to and its UTC instant."""

    day: date
    at: datetime


@dataclass(frozen=True)
class DailySchedule:
    """Daily occurrences of `reset_time` in timezone `tz`."""

    reset_time: ResetTime
    tz: tzinfo

    def occurrence_on(self, day: date) -> Occurrence:
        local = datetime.combine(day, time(self.reset_time.hour, self.reset_time.minute), tzinfo=self.tz)
        return Occurrence(day=day, at=local.astimezone(UTC))

    def latest_occurrence(self, at: datetime) -> Occurrence:
        """Most recent occurrence at or before `at`."""
        at = ensure_aware(at)
        day = at.astimezone(self.tz).date()
        occurrence = self.occurrence_on(day)
        if occurrence.at > at:
            occurrence = self.occurrence_on(day - timedelta(days=1))
        return occurrence

    def next_occurrence(self, after: datetime) -> Occurrence:
        """First occurrence strictly after `after`."""
        after = ensure_aware(after)
        day = after.astimezone(self.tz).date()
        occurrence = self.occurrence_on(day)
        if occurrence.at <= after:
            occurrence = self.occurrence_on(day + timedelta(days=1))
        return occurrence
