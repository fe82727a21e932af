"""Daily reset scheduler endpoints (operations)."""

from fastapi import APIRouter

from callqueue.api.v1.dependencies import ResetEngineDep, SettingsServiceDep
from callqueue.api.v1.errors import to_http_exception
from callqueue.api.v1.schemas import ResetResponse, ResetTimeRequest, ResetTimeResponse, SchedulerStatusResponse
from callqueue.services.exceptions import ServiceError

router = APIRouter(tags=["scheduler"])


@router.get("/scheduler/status", response_model=SchedulerStatusResponse, operation_id="getSchedulerStatus")
async def get_scheduler_status(engine: ResetEngineDep) -> SchedulerStatusResponse:
    return SchedulerStatusResponse.from_status(await engine.status())


@router.post("/scheduler/reset", response_model=ResetResponse, operation_id="triggerManualReset")
async def trigger_manual_reset(engine: ResetEngineDep) -> ResetResponse:
    """Run the daily reset now."""
    try:
        summary = await engine.trigger_manual_reset()
    except ServiceError as e:
        raise to_http_exception(e)
    return ResetResponse.from_summary(summary)


@router.put("/scheduler/reset-time", response_model=ResetTimeResponse, operation_id="setResetTime")
async def set_reset_time(
    body: ResetTimeRequest,
    service: SettingsServiceDep,
    engine: ResetEngineDep,
) -> ResetTimeResponse:
    """Store a new reset time and re-arm the running engine."""
    try:
        reset_time = await service.set_reset_time(body.reset_time)
    except ServiceError as e:
        raise to_http_exception(e)

    if engine.running:
        await engine.check_settings()
    return ResetTimeResponse(reset_time=str(reset_time))
