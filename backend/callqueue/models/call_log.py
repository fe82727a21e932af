"""Append-only call audit log."""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from callqueue.models.base import _utc_now, enum_column_type
from callqueue.models.enums import CallType


class CallLogEntry(SQLModel, table=True):
    """One dispatch of a ticket to a counter. Never updated or deleted."""

    __tablename__ = "call_logs"

    id: int | None = Field(default=None, primary_key=True)
    ticket_id: int = Field(foreign_key="tickets.id", index=True)
    counter_id: int = Field(foreign_key="counters.id", index=True)
    category_id: int = Field(foreign_key="service_categories.id")
    call_type: CallType = Field(sa_column=Column(enum_column_type(CallType, "calltype"), nullable=False))
    created_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
