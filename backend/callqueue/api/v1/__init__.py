"""API v1 routers."""

from fastapi import APIRouter

from callqueue.api.v1 import categories, counters, health, scheduler, tickets

router = APIRouter()
router.include_router(health.router, tags=["health"])
router.include_router(categories.router)
router.include_router(tickets.router)
router.include_router(counters.router)
router.include_router(scheduler.router)

__all__ = ["router"]
