"""Ticket and per-day ticket sequence models."""

from datetime import date, datetime

from sqlalchemy import Column, Date, DateTime, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from callqueue.models.base import _utc_now, enum_column_type
from callqueue.models.enums import TicketStatus


class Ticket(SQLModel, table=True):
    """Ticket handed to a visitor.

    Never deleted. Codes repeat across days (and after a manual reset), so
    lookups by code resolve to the most recently issued ticket.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        # Serves "oldest waiting ticket in category X"
        Index("ix_tickets_category_status_created", "category_id", "status", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    category_id: int = Field(foreign_key="service_categories.id", index=True)
    sequence_number: int
    issue_date: date = Field(sa_column=Column(Date, nullable=False))
    ticket_code: str = Field(max_length=10, index=True)
    status: TicketStatus = Field(
        default=TicketStatus.WAITING,
        sa_column=Column(enum_column_type(TicketStatus, "ticketstatus"), nullable=False),
    )
    # Counter that called the ticket most recently
    counter_id: int | None = Field(default=None, foreign_key="counters.id")
    # Bumped on every state change; guards compare-and-set updates
    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    called_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


# Constraint for one sequence row per category per calendar day
SEQUENCE_DAY_CONSTRAINT = UniqueConstraint("category_id", "sequence_date", name="uq_ticket_sequence_category_date")


class TicketSequence(SQLModel, table=True):
    """Last-issued sequence number for a category on a given day."""

    __tablename__ = "ticket_sequences"
    __table_args__ = (SEQUENCE_DAY_CONSTRAINT,)

    id: int | None = Field(default=None, primary_key=True)
    category_id: int = Field(foreign_key="service_categories.id", index=True)
    sequence_date: date = Field(sa_column=Column(Date, nullable=False))
    current_total_number: int = Field(default=0)  # Tickets issued today
    current_passed_number: int = Field(default=0)  # Tickets dispatched today
    updated_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
