"""Shared model helpers."""

from datetime import UTC, datetime
from enum import Enum as PyEnum

from sqlalchemy import Enum


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def enum_column_type(enum_cls: type[PyEnum], name: str) -> Enum:
    """Column type storing enum values (not names)."""
    return Enum(enum_cls, values_callable=lambda e: [x.value for x in e], name=name)
