"""Settings store."""

from datetime import UTC, date, datetime

import pytest

from callqueue.models.setting import RESET_TIME_KEY
from callqueue.services.reset.exceptions import ScheduleConfigInvalid
from callqueue.services.reset.schedule import ResetTime
from callqueue.services.settings.settings_service import SettingsService

pytestmark = pytest.mark.anyio


async def test_reset_time_round_trip(session_maker):
    async with session_maker() as session:
        assert await SettingsService(session).get_reset_time_raw() is None
        assert await SettingsService(session).set_reset_time("6:05") == ResetTime(6, 5)

    async with session_maker() as session:
        assert await SettingsService(session).get_reset_time_raw() == "06:05"


async def test_invalid_reset_time_is_rejected(session_maker):
    async with session_maker() as session:
        service = SettingsService(session)
        await service.set_reset_time("01:00")
        with pytest.raises(ScheduleConfigInvalid):
            await service.set_reset_time("25:00")

    async with session_maker() as session:
        assert await SettingsService(session).get_value(RESET_TIME_KEY) == "01:00"


async def test_last_reset_round_trip(session_maker):
    at = datetime(2026, 3, 10, 16, 0, 3, tzinfo=UTC)
    async with session_maker() as session:
        await SettingsService(session).record_last_reset(date(2026, 3, 11), at)

    async with session_maker() as session:
        service = SettingsService(session)
        assert await service.get_last_reset_day() == date(2026, 3, 11)
        assert await service.get_last_reset_at() == at


async def test_malformed_last_reset_is_ignored(session_maker):
    async with session_maker() as session:
        service = SettingsService(session)
        await service.set_value("ticket_last_reset_day", "yesterday")
        assert await service.get_last_reset_day() is None
