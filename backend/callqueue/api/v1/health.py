"""Liveness endpoint for load balancers and the ops dashboard."""

from typing import Any

import structlog
from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from callqueue.api.v1.dependencies import SessionDep

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health", operation_id="healthCheck")
async def health_check(request: Request, session: SessionDep) -> dict[str, Any]:
    """Report store reachability and whether the daily reset is armed."""
    try:
        await session.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError as e:
        logger.error("Health check could not reach the database", error=str(e))
        database_ok = False

    engine = getattr(request.app.state, "reset_engine", None)
    return {
        "status": "healthy" if database_ok else "unhealthy",
        "database": database_ok,
        "reset_armed": engine.is_armed() if engine is not None else False,
    }
