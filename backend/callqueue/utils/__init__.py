"""Utility functions and helpers."""

from callqueue.utils.datetime_utils import business_today, to_business_timezone, utc_now

__all__ = [
    "business_today",
    "to_business_timezone",
    "utc_now",
]
