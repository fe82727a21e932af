"""Counter endpoints: administration and ticket dispatch."""

from fastapi import APIRouter

from callqueue.api.v1.dependencies import CounterServiceDep, DispatcherDep
from callqueue.api.v1.errors import to_http_exception
from callqueue.api.v1.schemas import (
    CallManualRequest,
    CallNextRequest,
    CounterCreateRequest,
    CounterResponse,
    CounterStatusRequest,
    DispatchResponse,
    EndServiceResponse,
)
from callqueue.models.enums import CounterStatus
from callqueue.services.counters.counter_service import CounterView
from callqueue.services.counters.dispatch_service import NoCandidate
from callqueue.services.exceptions import ServiceError, ValidationError

router = APIRouter(tags=["counters"])


@router.get("/counters", response_model=list[CounterResponse], operation_id="listCounters")
async def list_counters(service: CounterServiceDep) -> list[CounterResponse]:
    return [CounterResponse.from_view(view) for view in await service.list_counters()]


@router.post("/counters", response_model=CounterResponse, status_code=201, operation_id="createCounter")
async def create_counter(body: CounterCreateRequest, service: CounterServiceDep) -> CounterResponse:
    try:
        counter = await service.create_counter(body.counter_number, body.name)
    except ServiceError as e:
        raise to_http_exception(e)
    return CounterResponse.from_view(CounterView(counter, None, None))


@router.put("/counters/{counter_id}/status", response_model=CounterResponse, operation_id="setCounterStatus")
async def set_counter_status(
    counter_id: int,
    body: CounterStatusRequest,
    service: CounterServiceDep,
) -> CounterResponse:
    """Open or close a counter. Busy is reached by calling a ticket, not set directly."""
    try:
        if body.status == CounterStatus.AVAILABLE:
            counter = await service.open_counter(counter_id)
        elif body.status == CounterStatus.CLOSED:
            counter = await service.close_counter(counter_id)
        else:
            raise ValidationError("Counter status can only be set to available or closed")
    except ServiceError as e:
        raise to_http_exception(e)
    return CounterResponse.from_view(CounterView(counter, None, None))


@router.post("/counters/{counter_id}/next", response_model=DispatchResponse, operation_id="callNext")
async def call_next(counter_id: int, body: CallNextRequest, dispatcher: DispatcherDep) -> DispatchResponse:
    """Call the oldest waiting ticket of a category."""
    try:
        result = await dispatcher.call_next(counter_id, body.category_id)
    except ServiceError as e:
        raise to_http_exception(e)

    if isinstance(result, NoCandidate):
        return DispatchResponse(counter_id=result.counter_id, category_id=result.category_id)
    return DispatchResponse.from_result(result)


@router.post("/counters/{counter_id}/call", response_model=DispatchResponse, operation_id="callManual")
async def call_manual(counter_id: int, body: CallManualRequest, dispatcher: DispatcherDep) -> DispatchResponse:
    """Call a specific ticket by code."""
    try:
        result = await dispatcher.call_manual(counter_id, body.ticket_code)
    except ServiceError as e:
        raise to_http_exception(e)
    return DispatchResponse.from_result(result)


@router.post("/counters/{counter_id}/end-service", response_model=EndServiceResponse, operation_id="endService")
async def end_service(counter_id: int, dispatcher: DispatcherDep) -> EndServiceResponse:
    try:
        result = await dispatcher.end_service(counter_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return EndServiceResponse(counter_id=result.counter_id, completed_ticket_code=result.completed_ticket_code)


@router.post("/counters/{counter_id}/recall", response_model=DispatchResponse, operation_id="recallTicket")
async def recall(counter_id: int, dispatcher: DispatcherDep) -> DispatchResponse:
    """Broadcast the current ticket again."""
    try:
        result = await dispatcher.recall(counter_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return DispatchResponse.from_result(result)
