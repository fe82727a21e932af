"""Per-category, per-day ticket sequence allocation."""

from datetime import date, datetime

import structlog
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from callqueue.db.row_lock import dialect_name
from callqueue.models.ticket import TicketSequence
from callqueue.utils.datetime_utils import utc_now

logger = structlog.get_logger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SequenceAllocator:
    """Hands out the next sequence number for a (category, day) pair.

    The increment is a single INSERT ... ON CONFLICT DO UPDATE ... RETURNING
    statement, so the store serializes concurrent callers on the sequence
    row and every caller reads back its own value. The first call of the day
    creates the row with value 1.

    The statement runs inside the caller's transaction; the number is only
    consumed if that transaction commits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_number(self, category_id: int, day: date, *, now: datetime | None = None) -> int:
        dialect = dialect_name(self.session)
        insert = _INSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Sequence allocation is not supported on {dialect}")

        ts = now or utc_now()
        table = TicketSequence.__table__  # type: ignore[attr-defined]
        stmt = insert(table).values(
            category_id=category_id,
            sequence_date=day,
            current_total_number=1,
            current_passed_number=0,
            updated_at=ts,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.category_id, table.c.sequence_date],
            set_={
                "current_total_number": table.c.current_total_number + 1,
                "updated_at": ts,
            },
        ).returning(table.c.current_total_number)

        result = await self.session.execute(stmt)
        number = int(result.scalar_one())
        logger.debug("Sequence number allocated", category_id=category_id, day=day.isoformat(), number=number)
        return number
