"""Key/value system settings."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel

from callqueue.models.base import _utc_now

# Keys used by the daily reset engine
RESET_TIME_KEY = "ticket_reset_time"
LAST_RESET_AT_KEY = "ticket_last_reset_at"
LAST_RESET_DAY_KEY = "ticket_last_reset_day"


class Setting(SQLModel, table=True):
    """Administrator-editable setting."""

    __tablename__ = "settings"

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(max_length=50, unique=True, index=True)
    value: str = Field(sa_column=Column(Text, nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    updated_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
