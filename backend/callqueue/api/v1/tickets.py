"""Ticket endpoints: issuing, display board listing and cancellation."""

from fastapi import APIRouter

from callqueue.api.v1.dependencies import TicketServiceDep
from callqueue.api.v1.errors import to_http_exception
from callqueue.api.v1.schemas import TicketCreateRequest, TicketListResponse, TicketResponse
from callqueue.services.exceptions import ServiceError

router = APIRouter(tags=["tickets"])


@router.post("/tickets", response_model=TicketResponse, status_code=201, operation_id="issueTicket")
async def issue_ticket(body: TicketCreateRequest, service: TicketServiceDep) -> TicketResponse:
    """Issue the next ticket for a category."""
    try:
        ticket = await service.issue_ticket(body.category_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return TicketResponse.from_model(ticket)


@router.get("/tickets/current", response_model=TicketListResponse, operation_id="listCurrentTickets")
async def list_current_tickets(service: TicketServiceDep, category_id: int | None = None) -> TicketListResponse:
    """Waiting and called tickets in queue order."""
    tickets = await service.list_current(category_id)
    return TicketListResponse(tickets=[TicketResponse.from_model(t) for t in tickets], total=len(tickets))


@router.get("/tickets/waiting-count", operation_id="getWaitingCount")
async def get_waiting_count(category_id: int, service: TicketServiceDep) -> dict[str, int]:
    return {"category_id": category_id, "waiting": await service.waiting_count(category_id)}


@router.get("/tickets/{ticket_code}", response_model=TicketResponse, operation_id="getTicket")
async def get_ticket(ticket_code: str, service: TicketServiceDep) -> TicketResponse:
    try:
        return TicketResponse.from_model(await service.get_by_code(ticket_code))
    except ServiceError as e:
        raise to_http_exception(e)


@router.post("/tickets/{ticket_code}/cancel", response_model=TicketResponse, operation_id="cancelTicket")
async def cancel_ticket(ticket_code: str, service: TicketServiceDep) -> TicketResponse:
    try:
        return TicketResponse.from_model(await service.cancel_ticket(ticket_code))
    except ServiceError as e:
        raise to_http_exception(e)
