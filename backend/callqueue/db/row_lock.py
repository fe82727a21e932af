"""Row locking and transaction helpers for state-mutating operations.

PostgreSQL honours SELECT ... FOR UPDATE and `lock_timeout`. SQLite ignores
both and serializes writers at the database level, so every mutation that
depends on a previously read row is also written as a compare-and-set
against the row's `version` column.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog
from sqlalchemy import and_, text, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import SQLModel, select

from callqueue.services.exceptions import ConflictError

logger = structlog.get_logger(__name__)

TModel = TypeVar("TModel", bound=SQLModel)

# Substrings identifying lock-wait timeouts, deadlocks and serialization failures
LOCK_ERROR_MARKERS = (
    "lock",
    "database is locked",
    "busy",
    "could not serialize",
    "serialization",
    "deadlock",
)


def is_lock_conflict(exc: BaseException) -> bool:
    """Whether a DB error was caused by lock contention rather than a real fault."""
    if not isinstance(exc, DBAPIError):
        return False
    # Driver message only; the statement text could match by accident
    txt = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in txt for marker in LOCK_ERROR_MARKERS)


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


async def apply_lock_timeout(session: AsyncSession, timeout_ms: int | None) -> None:
    """Bound lock waits for the current transaction (PostgreSQL only)."""
    if not timeout_ms or dialect_name(session) != "postgresql":
        return
    await session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))


async def lock_first(
    session: AsyncSession,
    model_class: type[TModel],
    *predicates: ColumnElement[bool],
    order_by: tuple[Any, ...] = (),
) -> TModel | None:
    """SELECT ... FOR UPDATE the first matching row and return it (or None)."""
    stmt = select(model_class)
    if predicates:
        stmt = stmt.where(predicates[0] if len(predicates) == 1 else and_(*predicates))
    if order_by:
        stmt = stmt.order_by(*order_by)
    stmt = stmt.limit(1).with_for_update().execution_options(populate_existing=True)
    res = await session.execute(stmt)
    return res.scalars().first()


async def lock_all(
    session: AsyncSession,
    model_class: type[TModel],
    *predicates: ColumnElement[bool],
    order_by: tuple[Any, ...] = (),
) -> list[TModel]:
    """SELECT ... FOR UPDATE every matching row, in a stable order."""
    stmt = select(model_class)
    if predicates:
        stmt = stmt.where(predicates[0] if len(predicates) == 1 else and_(*predicates))
    stmt = stmt.order_by(*(order_by or (model_class.id,)))  # type: ignore[attr-defined]
    stmt = stmt.with_for_update().execution_options(populate_existing=True)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def compare_and_set(session: AsyncSession, record: SQLModel, **fields: object) -> bool:
    """Update `record` only if its version is unchanged since it was read.

    On success the version is bumped, the record is refreshed and True is
    returned. False means another transaction won; the caller must
    re-evaluate against committed state instead of overwriting it.
    """
    model_class = type(record)
    record_id = record.id  # type: ignore[attr-defined]
    expected_version = record.version  # type: ignore[attr-defined]
    stmt = (
        update(model_class)
        .where(
            model_class.id == record_id,  # type: ignore[attr-defined]
            model_class.version == expected_version,  # type: ignore[attr-defined]
        )
        .values(**fields, version=expected_version + 1)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:  # type: ignore[attr-defined]
        logger.debug(
            "Compare-and-set lost",
            model=model_class.__name__,
            record_id=record_id,
            expected_version=expected_version,
        )
        return False
    await session.refresh(record)
    return True


@asynccontextmanager
async def locked_transaction(
    session: AsyncSession,
    *,
    lock_timeout_ms: int | None,
    conflict_error: type[ConflictError],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """Run the block as one transaction: commit on success, roll back on any error.

    Lock contention surfaces as `conflict_error`; other errors propagate
    unchanged. Nothing is observable unless the whole block commits.

    Usage:
        async with locked_transaction(session, lock_timeout_ms=5000,
                                      conflict_error=DispatchConflict, operation="call_next"):
            counter = await lock_first(session, Counter, Counter.id == counter_id)
            ...
    """
    try:
        await apply_lock_timeout(session, lock_timeout_ms)
        yield session
        await session.commit()
    except DBAPIError as e:
        await session.rollback()
        if is_lock_conflict(e):
            logger.warning("Lock contention, transaction aborted", operation=operation, error=str(e))
            raise conflict_error(f"{operation}: lock contention, retry the operation") from e
        raise
    except BaseException:
        await session.rollback()
        raise
