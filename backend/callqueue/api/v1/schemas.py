"""API request and response schemas."""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_serializer

from callqueue.models.category import ServiceCategory
from callqueue.models.enums import CallType, CategoryStatus, CounterStatus, TicketStatus
from callqueue.models.ticket import Ticket
from callqueue.services.counters.counter_service import CounterView
from callqueue.services.counters.dispatch_service import DispatchResult
from callqueue.services.reset.engine import EngineStatus
from callqueue.services.reset.reset_service import ResetSummary
from callqueue.utils.datetime_utils import to_business_timezone


def _serialize_dt(dt: datetime | None) -> str | None:
    localized = to_business_timezone(dt)
    return localized.isoformat() if localized else None


# =============================================================================
# Request Schemas
# =============================================================================


class CategoryCreateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=1)
    name: str = Field(min_length=1, max_length=50)
    english_name: str | None = Field(default=None, max_length=100)
    prefix: str | None = Field(default=None, min_length=1, max_length=5)


class CategoryUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    english_name: str | None = Field(default=None, max_length=100)
    prefix: str | None = Field(default=None, min_length=1, max_length=5)


class TicketCreateRequest(BaseModel):
    category_id: int


class CounterCreateRequest(BaseModel):
    counter_number: int = Field(gt=0)
    name: str | None = Field(default=None, max_length=50)


class CounterStatusRequest(BaseModel):
    """Open (`available`) or close (`closed`) a counter."""

    status: CounterStatus


class CallNextRequest(BaseModel):
    category_id: int


class CallManualRequest(BaseModel):
    ticket_code: str = Field(min_length=1, max_length=10)


class ResetTimeRequest(BaseModel):
    reset_time: str


# =============================================================================
# Response Schemas
# =============================================================================


class CategoryResponse(BaseModel):
    id: int
    code: str
    name: str
    english_name: str | None
    prefix: str
    status: CategoryStatus

    @classmethod
    def from_model(cls, category: ServiceCategory) -> "CategoryResponse":
        return cls(
            id=category.id,  # type: ignore[arg-type]
            code=category.code,
            name=category.name,
            english_name=category.english_name,
            prefix=category.prefix,
            status=category.status,
        )


class TicketResponse(BaseModel):
    id: int
    ticket_code: str
    sequence_number: int
    category_id: int
    issue_date: date
    status: TicketStatus
    counter_id: int | None
    created_at: datetime
    called_at: datetime | None
    completed_at: datetime | None

    @field_serializer("created_at", "called_at", "completed_at")
    def serialize_dt(self, dt: datetime | None) -> str | None:
        """Serialize datetime to the business timezone."""
        return _serialize_dt(dt)

    @classmethod
    def from_model(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,  # type: ignore[arg-type]
            ticket_code=ticket.ticket_code,
            sequence_number=ticket.sequence_number,
            category_id=ticket.category_id,
            issue_date=ticket.issue_date,
            status=ticket.status,
            counter_id=ticket.counter_id,
            created_at=ticket.created_at,
            called_at=ticket.called_at,
            completed_at=ticket.completed_at,
        )


class TicketListResponse(BaseModel):
    tickets: list[TicketResponse]
    total: int


class CounterResponse(BaseModel):
    id: int
    counter_number: int
    name: str | None
    status: CounterStatus
    current_ticket_code: str | None
    current_category_name: str | None

    @classmethod
    def from_view(cls, view: CounterView) -> "CounterResponse":
        counter = view.counter
        return cls(
            id=counter.id,  # type: ignore[arg-type]
            counter_number=counter.counter_number,
            name=counter.name,
            status=counter.status,
            current_ticket_code=view.current_ticket_code,
            current_category_name=view.current_category_name,
        )


class DispatchResponse(BaseModel):
    """Result of a call. `ticket_code` is null when no ticket was waiting."""

    ticket_code: str | None = None
    counter_id: int
    counter_number: int | None = None
    category_id: int
    category_name: str | None = None
    call_type: CallType | None = None
    called_at: datetime | None = None
    previous_counter_id: int | None = None

    @field_serializer("called_at")
    def serialize_called_at(self, dt: datetime | None) -> str | None:
        return _serialize_dt(dt)

    @classmethod
    def from_result(cls, result: DispatchResult) -> "DispatchResponse":
        return cls(
            ticket_code=result.ticket_code,
            counter_id=result.counter_id,
            counter_number=result.counter_number,
            category_id=result.category_id,
            category_name=result.category_name,
            call_type=result.call_type,
            called_at=result.called_at,
            previous_counter_id=result.previous_counter_id,
        )


class EndServiceResponse(BaseModel):
    counter_id: int
    completed_ticket_code: str | None


class SchedulerStatusResponse(BaseModel):
    armed: bool
    running: bool
    reset_time: str | None
    next_fire_time: datetime | None
    last_fire_time: datetime | None
    last_error: str | None
    last_error_at: datetime | None
    consecutive_failures: int

    @field_serializer("next_fire_time", "last_fire_time", "last_error_at")
    def serialize_dt(self, dt: datetime | None) -> str | None:
        return _serialize_dt(dt)

    @classmethod
    def from_status(cls, status: EngineStatus) -> "SchedulerStatusResponse":
        return cls(
            armed=status.armed,
            running=status.running,
            reset_time=status.reset_time,
            next_fire_time=status.next_fire_time,
            last_fire_time=status.last_fire_time,
            last_error=status.last_error,
            last_error_at=status.last_error_at,
            consecutive_failures=status.consecutive_failures,
        )


class ResetResponse(BaseModel):
    reset_date: date
    timestamp: datetime
    sequences_zeroed: int
    sequences_repurposed: int
    sequences_deleted: int
    tickets_cancelled: int
    tickets_completed: int
    counters_cleared: int

    @field_serializer("timestamp")
    def serialize_timestamp(self, dt: datetime) -> str | None:
        return _serialize_dt(dt)

    @classmethod
    def from_summary(cls, summary: ResetSummary) -> "ResetResponse":
        return cls(
            reset_date=summary.reset_date,
            timestamp=summary.timestamp,
            sequences_zeroed=summary.sequences_zeroed,
            sequences_repurposed=summary.sequences_repurposed,
            sequences_deleted=summary.sequences_deleted,
            tickets_cancelled=summary.tickets_cancelled,
            tickets_completed=summary.tickets_completed,
            counters_cleared=summary.counters_cleared,
        )


class ResetTimeResponse(BaseModel):
    reset_time: str
