"""Settings store access for the reset engine and administrators."""

from datetime import date, datetime

import structlog
from sqlmodel import select

from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.models.setting import LAST_RESET_AT_KEY, LAST_RESET_DAY_KEY, RESET_TIME_KEY, Setting
from callqueue.services.reset.schedule import ResetTime
from callqueue.utils.datetime_utils import ensure_aware, utc_now

logger = structlog.get_logger(__name__)


class SettingsService:
    """Reads and writes key/value settings.

    Writes take `commit=False` when they must join a larger transaction
    (the reset records its own completion atomically with the reset).
    """

    def __init__(self, session: TrackedAsyncSession):
        self.session = session

    async def get_value(self, key: str) -> str | None:
        result = await self.session.execute(
            select(Setting).where(Setting.key == key).execution_options(populate_existing=True)
        )
        setting = result.scalars().first()
        return setting.value if setting else None

    async def set_value(self, key: str, value: str, *, description: str | None = None, commit: bool = True) -> None:
        result = await self.session.execute(select(Setting).where(Setting.key == key))
        setting = result.scalars().first()
        if setting is None:
            setting = Setting(key=key, value=value, description=description)
            self.session.add(setting)
        else:
            setting.value = value
            if description is not None:
                setting.description = description
        setting.updated_at = utc_now()

        if commit:
            await self.session.commit()
        else:
            await self.session.flush()

    async def get_reset_time_raw(self) -> str | None:
        """Stored reset time, unvalidated."""
        return await self.get_value(RESET_TIME_KEY)

    async def set_reset_time(self, value: str) -> ResetTime:
        """Validate and store a new reset time.

        Raises:
            ScheduleConfigInvalid: value is not "HH:MM"
        """
        reset_time = ResetTime.parse(value)
        await self.set_value(RESET_TIME_KEY, str(reset_time), description="Daily ticket reset time (HH:MM)")
        logger.info("Reset time updated", reset_time=str(reset_time))
        return reset_time

    async def get_last_reset_day(self) -> date | None:
        """Business day of the last automatic reset."""
        raw = await self.get_value(LAST_RESET_DAY_KEY)
        if not raw:
            return None
        try:
            return date.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring malformed last reset day", value=raw)
            return None

    async def get_last_reset_at(self) -> datetime | None:
        raw = await self.get_value(LAST_RESET_AT_KEY)
        if not raw:
            return None
        try:
            return ensure_aware(datetime.fromisoformat(raw))
        except ValueError:
            logger.warning("Ignoring malformed last reset time", value=raw)
            return None

    async def record_last_reset(self, day: date, at: datetime, *, commit: bool = True) -> None:
        """Persist which scheduled day was last reset, and when."""
        await self.set_value(LAST_RESET_DAY_KEY, day.isoformat(), commit=False)
        await self.set_value(LAST_RESET_AT_KEY, ensure_aware(at).isoformat(), commit=commit)

    async def record_reset_baseline(self, day: date) -> None:
        """Mark `day` as handled without claiming a reset happened."""
        await self.set_value(LAST_RESET_DAY_KEY, day.isoformat())
