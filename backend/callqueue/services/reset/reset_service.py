"""The daily reset transaction."""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col

from callqueue.config import settings
from callqueue.db.row_lock import apply_lock_timeout, lock_all
from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.models.counter import Counter, CounterLastTicket
from callqueue.models.enums import TicketStatus
from callqueue.models.ticket import Ticket, TicketSequence
from callqueue.services.events.events import DailyResetEvent
from callqueue.services.reset.exceptions import ResetTransactionFailed
from callqueue.services.settings.settings_service import SettingsService
from callqueue.utils.datetime_utils import business_today, utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResetSummary:
    reset_date: date
    timestamp: datetime
    sequences_zeroed: int = 0
    sequences_repurposed: int = 0
    sequences_deleted: int = 0
    tickets_cancelled: int = 0
    tickets_completed: int = 0
    counters_cleared: int = 0


class DailyResetService:
    """Resets all per-day queue state in one transaction.

    - today's sequence rows are zeroed
    - a category without a row for today gets its latest past row re-dated
      to today and zeroed; its other past rows are deleted
    - waiting tickets are cancelled, called tickets completed
    - counters drop their current ticket (status is left as it is)
    - per-counter last-ticket memos are cleared
    - one `ticket.dailyReset` event is published after commit

    Nothing is visible unless the whole reset commits.
    """

    def __init__(
        self,
        session: TrackedAsyncSession,
        *,
        clock: Callable[[], datetime] = utc_now,
        lock_timeout_ms: int | None = None,
    ):
        self.session = session
        self.clock = clock
        self.lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else settings.dispatch_lock_timeout_ms

    async def perform_reset(self, *, record_reset_day: date | None = None) -> ResetSummary:
        """Run the reset.

        Args:
            record_reset_day: scheduled day this reset satisfies; stored with
                the reset so the engine never runs it twice. Manual resets
                pass None.

        Raises:
            ResetTransactionFailed: the store rejected the reset (rolled back)
        """
        now = self.clock()
        today = business_today(now)
        log = logger.bind(reset_date=today.isoformat())

        try:
            await apply_lock_timeout(self.session, self.lock_timeout_ms)
            summary = await self._reset(today, now)
            if record_reset_day is not None:
                await SettingsService(self.session).record_last_reset(record_reset_day, now, commit=False)
            self.session.queue_event(DailyResetEvent(reset_date=today, timestamp=now))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            log.exception("Daily reset transaction failed")
            raise ResetTransactionFailed(f"Daily reset for {today.isoformat()} failed: {e}") from e
        except BaseException:
            await self.session.rollback()
            raise

        log.info(
            "Daily reset completed",
            sequences_zeroed=summary.sequences_zeroed,
            sequences_repurposed=summary.sequences_repurposed,
            sequences_deleted=summary.sequences_deleted,
            tickets_cancelled=summary.tickets_cancelled,
            tickets_completed=summary.tickets_completed,
            counters_cleared=summary.counters_cleared,
        )
        return summary

    async def _reset(self, today: date, now: datetime) -> ResetSummary:
        # Broadest lock footprint: every sequence row, then every counter
        sequences = await lock_all(
            self.session,
            TicketSequence,
            order_by=(
                col(TicketSequence.category_id),
                col(TicketSequence.sequence_date).desc(),
                col(TicketSequence.id),
            ),
        )
        counters = await lock_all(self.session, Counter)

        zeroed, repurposed, deleted = await self._reset_sequences(sequences, today, now)
        cancelled, completed = await self._close_open_tickets(now)
        cleared = self._clear_counters(counters, now)
        await self._clear_last_ticket_memos(now)
        await self.session.flush()

        return ResetSummary(
            reset_date=today,
            timestamp=now,
            sequences_zeroed=zeroed,
            sequences_repurposed=repurposed,
            sequences_deleted=deleted,
            tickets_cancelled=cancelled,
            tickets_completed=completed,
            counters_cleared=cleared,
        )

    async def _reset_sequences(
        self, sequences: list[TicketSequence], today: date, now: datetime
    ) -> tuple[int, int, int]:
        by_category: dict[int, list[TicketSequence]] = defaultdict(list)
        for row in sequences:
            by_category[row.category_id].append(row)

        zeroed = repurposed = deleted = 0
        for category_id, rows in by_category.items():
            todays = [r for r in rows if r.sequence_date == today]
            # Rows are ordered newest first
            past = [r for r in rows if r.sequence_date < today]
            if not todays and not past:
                continue

            # Only today's row survives; without one, the newest past row becomes it
            latest = None if todays else past[0]
            superfluous = past if todays else past[1:]
            for row in superfluous:
                await self.session.delete(row)
                deleted += 1
            # Deletes must reach the store before the re-dated row
            await self.session.flush()

            for row in todays:
                self._zero(row, now)
                zeroed += 1
            if latest is not None:
                latest.sequence_date = today
                self._zero(latest, now)
                repurposed += 1
            logger.debug(
                "Sequence rows reset", category_id=category_id, repurposed=latest is not None, deleted=len(superfluous)
            )

        return zeroed, repurposed, deleted

    @staticmethod
    def _zero(row: TicketSequence, now: datetime) -> None:
        row.current_total_number = 0
        row.current_passed_number = 0
        row.updated_at = now

    async def _close_open_tickets(self, now: datetime) -> tuple[int, int]:
        cancelled = await self.session.execute(
            update(Ticket)
            .where(col(Ticket.status) == TicketStatus.WAITING)
            .values(status=TicketStatus.CANCELLED, version=col(Ticket.version) + 1)
            .execution_options(synchronize_session=False)
        )
        completed = await self.session.execute(
            update(Ticket)
            .where(col(Ticket.status) == TicketStatus.CALLED)
            .values(status=TicketStatus.COMPLETED, completed_at=now, version=col(Ticket.version) + 1)
            .execution_options(synchronize_session=False)
        )
        return cancelled.rowcount or 0, completed.rowcount or 0  # type: ignore[attr-defined]

    @staticmethod
    def _clear_counters(counters: list[Counter], now: datetime) -> int:
        cleared = 0
        for counter in counters:
            if counter.current_ticket_id is None and counter.current_category_id is None:
                continue
            counter.current_ticket_id = None
            counter.current_category_id = None
            counter.version += 1
            counter.updated_at = now
            cleared += 1
        return cleared

    async def _clear_last_ticket_memos(self, now: datetime) -> None:
        await self.session.execute(
            update(CounterLastTicket)
            .where(col(CounterLastTicket.last_ticket_code).is_not(None))
            .values(last_ticket_code=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
