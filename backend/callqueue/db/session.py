"""Database engine and session configuration."""

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# Register all models with SQLModel.metadata
import callqueue.models  # noqa: F401
from callqueue.config import settings
from callqueue.db.tracked_session import TrackedAsyncSession

if TYPE_CHECKING:
    from callqueue.services.events.publish_service import Broadcaster
    from callqueue.utils.background_tasks import BackgroundTasks


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async engine; pool sizing applies to server databases only."""
    url = database_url or settings.database_url
    kwargs: dict[str, Any] = {
        "echo": False,  # SQL logging controlled via structlog configuration
        "future": True,
        "pool_pre_ping": True,
    }
    if make_url(url).get_backend_name() != "sqlite":
        kwargs.update(pool_size=5, max_overflow=10, pool_recycle=300)
    return create_async_engine(url, **kwargs)


def build_session_maker(
    bind: AsyncEngine,
    *,
    broadcaster: "Broadcaster | None" = None,
    bg_tasks: "BackgroundTasks | None" = None,
) -> async_sessionmaker[TrackedAsyncSession]:
    """Session factory whose sessions publish queued events through `broadcaster`."""
    return async_sessionmaker(
        bind,
        class_=TrackedAsyncSession,
        expire_on_commit=False,
        broadcaster=broadcaster,
        bg_tasks=bg_tasks,
    )


engine = build_engine()

async_session_maker = build_session_maker(engine)


def configure_broadcaster(
    broadcaster: "Broadcaster | None",
    bg_tasks: "BackgroundTasks | None" = None,
) -> None:
    """Attach the process-wide broadcaster to sessions created by async_session_maker."""
    async_session_maker.configure(broadcaster=broadcaster, bg_tasks=bg_tasks)


async def get_session() -> AsyncGenerator[TrackedAsyncSession]:
    """Dependency that provides an async database session."""
    async with async_session_maker() as session:
        yield session


async def create_schema(bind: AsyncEngine | None = None) -> None:
    """Create all tables (CLI bootstrap and tests; production uses Alembic)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose of the engine and release all connections.

    Should be called during application shutdown.
    """
    await engine.dispose()
