"""Daily reset engine.

Arms an APScheduler cron job at the configured local reset time and keeps
it honest:

- a settings watch re-arms the job when the stored reset time changes
- a health check re-arms the job if it is no longer scheduled and runs any
  reset that was missed by more than the grace window
- every automatic run is attributed to its scheduled business day, and the
  last reset day is stored in the reset transaction itself, so a day is
  never reset twice by the schedule, across restarts and re-arms

Scheduled runs never raise: failures are logged and exposed via status().
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from callqueue.config import settings
from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.services.reset.exceptions import ResetTransactionFailed
from callqueue.services.reset.reset_service import DailyResetService, ResetSummary
from callqueue.services.reset.schedule import DailySchedule, Occurrence, ResetTime, resolve_reset_time
from callqueue.services.settings.settings_service import SettingsService
from callqueue.utils.datetime_utils import BUSINESS_TIMEZONE, ensure_aware, utc_now

logger = structlog.get_logger(__name__)

RESET_JOB_ID = "daily_reset"
WATCH_JOB_ID = "daily_reset_settings_watch"
HEALTH_JOB_ID = "daily_reset_health_check"


@dataclass(frozen=True)
class EngineStatus:
    armed: bool
    running: bool
    reset_time: str | None
    next_fire_time: datetime | None
    last_fire_time: datetime | None
    last_error: str | None
    last_error_at: datetime | None
    consecutive_failures: int


class DailyResetEngine:
    """Schedules, guards and self-heals the daily reset.

    Usage:
        engine = DailyResetEngine(async_session_maker)
        await engine.start()
        ...
        await engine.stop()
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[TrackedAsyncSession],
        *,
        scheduler: AsyncIOScheduler | None = None,
        clock: Callable[[], datetime] = utc_now,
        tz: tzinfo = BUSINESS_TIMEZONE,
        default_reset_time: str | None = None,
        watch_interval_seconds: int | None = None,
        health_check_interval_seconds: int | None = None,
        misfire_grace_seconds: int | None = None,
    ):
        self.session_maker = session_maker
        self.clock = clock
        self.tz = tz
        self.default_reset_time = default_reset_time or settings.default_reset_time
        self.watch_interval_seconds = watch_interval_seconds or settings.reset_watch_interval_seconds
        self.health_check_interval_seconds = (
            health_check_interval_seconds or settings.reset_health_check_interval_seconds
        )
        self.misfire_grace = timedelta(
            seconds=misfire_grace_seconds if misfire_grace_seconds is not None else settings.reset_misfire_grace_seconds
        )

        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._lock = asyncio.Lock()
        self._reset_time: ResetTime | None = None
        self._started = False

        self._last_fire_time: datetime | None = None
        self._last_error: str | None = None
        self._last_error_at: datetime | None = None
        self._consecutive_failures = 0

    # Lifecycle

    async def start(self) -> None:
        """Arm the reset job and the watch/health jobs, then catch up on a missed reset."""
        if self._started:
            return

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone=self.tz)
        if not self._scheduler.running:
            self._scheduler.start()

        reset_time = await self._load_reset_time()
        self._arm(reset_time)
        self._scheduler.add_job(
            self.check_settings,
            IntervalTrigger(seconds=self.watch_interval_seconds),
            id=WATCH_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.add_job(
            self.health_check,
            IntervalTrigger(seconds=self.health_check_interval_seconds),
            id=HEALTH_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._started = True
        logger.info("Daily reset engine started", reset_time=str(reset_time), timezone=str(self.tz))

        await self._catch_up(respect_grace=False)

    async def stop(self) -> None:
        if self._scheduler is not None:
            for job_id in (RESET_JOB_ID, WATCH_JOB_ID, HEALTH_JOB_ID):
                self._remove_job(job_id)
            if self._owns_scheduler and self._scheduler.running:
                self._scheduler.shutdown(wait=False)
                self._scheduler = None
        self._started = False
        self._reset_time = None
        logger.info("Daily reset engine stopped")

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    # Scheduled jobs

    async def run_scheduled_reset(self) -> None:
        """Cron job callback: reset for the occurrence that just fired."""
        schedule = self._schedule()
        if schedule is None:
            logger.warning("Reset fired while engine is not armed")
            return
        await self._run_automatic(schedule.latest_occurrence(self.clock()), source="schedule")

    async def check_settings(self) -> None:
        """Re-arm when the stored reset time changed."""
        try:
            reset_time = await self._load_reset_time()
            if reset_time == self._reset_time:
                return
            logger.info("Reset time changed, re-arming", old=str(self._reset_time), new=str(reset_time))
            self._arm(reset_time)
            await self._catch_up(respect_grace=False)
        except Exception:
            logger.exception("Reset settings watch failed")

    async def health_check(self) -> None:
        """Re-arm a stalled trigger and run a reset that was missed."""
        try:
            reset_time = await self._load_reset_time()
            if self._scheduler is not None and not self._scheduler.running:
                logger.warning("Scheduler not running, restarting it")
                self._scheduler.start()
            if not self.is_armed() or reset_time != self._reset_time:
                logger.warning("Reset trigger not armed, re-arming", reset_time=str(reset_time))
                self._rearm(reset_time)

            missed = await self._missed_occurrence(respect_grace=True)
            if missed is not None:
                logger.warning("Missed daily reset detected, re-arming", day=missed.day.isoformat())
                self._rearm(reset_time)
                await self._run_automatic(missed, source="health_check")
        except Exception:
            logger.exception("Reset health check failed")

    # Operator actions

    async def trigger_manual_reset(self) -> ResetSummary:
        """Run the reset now, outside the schedule.

        Raises:
            ResetTransactionFailed: reset did not commit
        """
        async with self._lock:
            try:
                summary = await self._perform(record_reset_day=None)
            except ResetTransactionFailed as e:
                self._record_failure(e)
                raise
            self._record_success(summary)
            logger.info("Manual reset completed", reset_date=summary.reset_date.isoformat())
            return summary

    @property
    def running(self) -> bool:
        return self._started

    def is_armed(self) -> bool:
        if self._scheduler is None or not self._scheduler.running:
            return False
        job = self._scheduler.get_job(RESET_JOB_ID)
        return job is not None and job.next_run_time is not None

    async def status(self) -> EngineStatus:
        next_fire_time = None
        if self.is_armed():
            job = self._scheduler.get_job(RESET_JOB_ID)  # type: ignore[union-attr]
            next_fire_time = job.next_run_time if job else None

        last_fire_time = self._last_fire_time
        try:
            async with self.session_maker() as session:
                stored = await SettingsService(session).get_last_reset_at()
            if stored is not None and (last_fire_time is None or stored > last_fire_time):
                last_fire_time = stored
        except SQLAlchemyError as e:
            logger.warning("Could not read last reset time", error=str(e))

        return EngineStatus(
            armed=self.is_armed(),
            running=self._started,
            reset_time=str(self._reset_time) if self._reset_time else None,
            next_fire_time=next_fire_time,
            last_fire_time=last_fire_time,
            last_error=self._last_error,
            last_error_at=self._last_error_at,
            consecutive_failures=self._consecutive_failures,
        )

    # Internals

    def _schedule(self) -> DailySchedule | None:
        if self._reset_time is None:
            return None
        return DailySchedule(self._reset_time, self.tz)

    def _arm(self, reset_time: ResetTime) -> None:
        assert self._scheduler is not None
        self._scheduler.add_job(
            self.run_scheduled_reset,
            CronTrigger(hour=reset_time.hour, minute=reset_time.minute, timezone=self.tz),
            id=RESET_JOB_ID,
            replace_existing=True,
            misfire_grace_time=int(self.misfire_grace.total_seconds()) or None,
            coalesce=True,
            max_instances=1,
        )
        self._reset_time = reset_time
        logger.info("Daily reset armed", reset_time=str(reset_time))

    def _rearm(self, reset_time: ResetTime) -> None:
        self._remove_job(RESET_JOB_ID)
        self._arm(reset_time)

    def _remove_job(self, job_id: str) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    async def _load_reset_time(self) -> ResetTime:
        """Stored reset time, or the default when missing, invalid or unreadable."""
        try:
            async with self.session_maker() as session:
                raw = await SettingsService(session).get_reset_time_raw()
        except SQLAlchemyError as e:
            logger.error("Could not read reset time setting", error=str(e))
            return self._reset_time or resolve_reset_time(self.default_reset_time)
        return resolve_reset_time(raw, self.default_reset_time)

    async def _missed_occurrence(self, *, respect_grace: bool) -> Occurrence | None:
        """Latest occurrence if it has not been reset yet.

        A fresh store has no reset record; the latest occurrence is recorded
        as done so the engine starts from the next one.
        """
        schedule = self._schedule()
        if schedule is None:
            return None
        now = self.clock()
        occurrence = schedule.latest_occurrence(now)
        if respect_grace and ensure_aware(now) - occurrence.at < self.misfire_grace:
            return None

        async with self.session_maker() as session:
            service = SettingsService(session)
            last_day = await service.get_last_reset_day()
            if last_day is None:
                await service.record_reset_baseline(occurrence.day)
                logger.info("No reset recorded yet, starting from the next occurrence", day=occurrence.day.isoformat())
                return None

        if last_day >= occurrence.day:
            return None
        return occurrence

    async def _catch_up(self, *, respect_grace: bool) -> None:
        try:
            missed = await self._missed_occurrence(respect_grace=respect_grace)
        except SQLAlchemyError as e:
            logger.error("Could not check for a missed reset", error=str(e))
            return
        if missed is not None:
            logger.warning("Running missed daily reset", day=missed.day.isoformat())
            await self._run_automatic(missed, source="catch_up")

    async def _run_automatic(self, occurrence: Occurrence, *, source: str) -> None:
        log = logger.bind(day=occurrence.day.isoformat(), source=source)
        async with self._lock:
            try:
                async with self.session_maker() as session:
                    last_day = await SettingsService(session).get_last_reset_day()
                if last_day is not None and last_day >= occurrence.day:
                    log.info("Daily reset already done, skipping")
                    return
                summary = await self._perform(record_reset_day=occurrence.day)
            except Exception as e:
                self._record_failure(e)
                log.error(
                    "Automatic daily reset failed",
                    error=str(e),
                    consecutive_failures=self._consecutive_failures,
                )
                return
            self._record_success(summary)
            log.info("Automatic daily reset completed", reset_date=summary.reset_date.isoformat())

    async def _perform(self, *, record_reset_day: date | None) -> ResetSummary:
        async with self.session_maker() as session:
            return await DailyResetService(session, clock=self.clock).perform_reset(record_reset_day=record_reset_day)

    def _record_success(self, summary: ResetSummary) -> None:
        self._last_fire_time = summary.timestamp
        self._last_error = None
        self._last_error_at = None
        self._consecutive_failures = 0

    def _record_failure(self, error: BaseException) -> None:
        self._last_error = str(error)
        self._last_error_at = self.clock()
        self._consecutive_failures += 1
