"""Service counter (desk) models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, SQLModel

from callqueue.models.base import _utc_now, enum_column_type
from callqueue.models.enums import CounterStatus


class Counter(SQLModel, table=True):
    """Service desk.

    `status == BUSY` when a ticket is bound; CLOSED and AVAILABLE counters
    never hold a current ticket. A counter displaced by an operator override
    or by the daily reset keeps BUSY with no ticket until service is ended.
    """

    __tablename__ = "counters"

    id: int | None = Field(default=None, primary_key=True)
    counter_number: int = Field(unique=True, index=True)
    name: str | None = Field(default=None, max_length=50)
    status: CounterStatus = Field(
        default=CounterStatus.CLOSED,
        sa_column=Column(enum_column_type(CounterStatus, "counterstatus"), nullable=False),
    )
    # tickets.counter_id points back here, so this side is added after both tables exist
    current_ticket_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer,
            ForeignKey("tickets.id", use_alter=True, name="fk_counters_current_ticket_id"),
            nullable=True,
        ),
    )
    current_category_id: int | None = Field(default=None, foreign_key="service_categories.id")
    version: int = Field(default=1)
    updated_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))


COUNTER_LAST_TICKET_CONSTRAINT = UniqueConstraint(
    "counter_id", "category_id", name="uq_counter_last_ticket_counter_category"
)


class CounterLastTicket(SQLModel, table=True):
    """Memo of the last ticket a counter served per category (cleared daily)."""

    __tablename__ = "counter_last_tickets"
    __table_args__ = (COUNTER_LAST_TICKET_CONSTRAINT,)

    id: int | None = Field(default=None, primary_key=True)
    counter_id: int = Field(foreign_key="counters.id", index=True)
    category_id: int = Field(foreign_key="service_categories.id")
    last_ticket_code: str | None = Field(default=None, max_length=10)
    updated_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
