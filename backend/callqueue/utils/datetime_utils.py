"""Datetime utility functions."""

from datetime import UTC, date, datetime, tzinfo
from zoneinfo import ZoneInfo

from callqueue.config import settings

# Business reference timezone: defines "today" and the daily reset wall clock
BUSINESS_TIMEZONE = ZoneInfo(settings.timezone)


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (the store keeps UTC wall values)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def to_business_timezone(dt: datetime | None, tz: tzinfo = BUSINESS_TIMEZONE) -> datetime | None:
    """Convert a datetime to the business timezone.

    Args:
        dt: Datetime to convert (can be None)
        tz: Target timezone, defaults to the configured business timezone

    Returns:
        Datetime in the business timezone, or None if input was None
    """
    if dt is None:
        return None
    return ensure_aware(dt).astimezone(tz)


def business_today(now: datetime | None = None, tz: tzinfo = BUSINESS_TIMEZONE) -> date:
    """Calendar date in the business timezone at the given instant (default: now)."""
    instant = ensure_aware(now) if now is not None else utc_now()
    return instant.astimezone(tz).date()
