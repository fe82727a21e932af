"""Database package with session management and row locking."""

from callqueue.db.session import (
    async_session_maker,
    build_engine,
    build_session_maker,
    configure_broadcaster,
    create_schema,
    dispose_engine,
    engine,
    get_session,
)
from callqueue.db.tracked_session import TrackedAsyncSession

__all__ = [
    "TrackedAsyncSession",
    "async_session_maker",
    "build_engine",
    "build_session_maker",
    "configure_broadcaster",
    "create_schema",
    "dispose_engine",
    "engine",
    "get_session",
]
