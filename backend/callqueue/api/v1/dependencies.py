"""FastAPI dependencies for service injection."""

from typing import Annotated

from fastapi import Depends, Request

from callqueue.db import TrackedAsyncSession, get_session
from callqueue.services.categories.category_service import CategoryService
from callqueue.services.counters.counter_service import CounterService
from callqueue.services.counters.dispatch_service import CounterDispatcher
from callqueue.services.reset.engine import DailyResetEngine
from callqueue.services.settings.settings_service import SettingsService
from callqueue.services.tickets.ticket_service import TicketService

SessionDep = Annotated[TrackedAsyncSession, Depends(get_session)]


async def get_category_service(session: SessionDep) -> CategoryService:
    return CategoryService(session)


async def get_ticket_service(session: SessionDep) -> TicketService:
    return TicketService(session)


async def get_counter_service(session: SessionDep) -> CounterService:
    return CounterService(session)


async def get_dispatcher(session: SessionDep) -> CounterDispatcher:
    return CounterDispatcher(session)


async def get_settings_service(session: SessionDep) -> SettingsService:
    return SettingsService(session)


def get_reset_engine(request: Request) -> DailyResetEngine:
    """Reset engine created by the application lifespan."""
    engine: DailyResetEngine = request.app.state.reset_engine
    return engine


# Type aliases for cleaner endpoint signatures
CategoryServiceDep = Annotated[CategoryService, Depends(get_category_service)]
TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
CounterServiceDep = Annotated[CounterService, Depends(get_counter_service)]
DispatcherDep = Annotated[CounterDispatcher, Depends(get_dispatcher)]
SettingsServiceDep = Annotated[SettingsService, Depends(get_settings_service)]
ResetEngineDep = Annotated[DailyResetEngine, Depends(get_reset_engine)]
