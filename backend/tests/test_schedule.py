"""Reset time parsing and occurrence arithmetic."""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest

from callqueue.services.reset.exceptions import ScheduleConfigInvalid
from callqueue.services.reset.schedule import DailySchedule, ResetTime, resolve_reset_time

SHANGHAI = ZoneInfo("Asia/Shanghai")
PRAGUE = ZoneInfo("Europe/Prague")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("00:00", ResetTime(0, 0)),
        ("8:05", ResetTime(8, 5)),
        ("08:05", ResetTime(8, 5)),
        ("23:59", ResetTime(23, 59)),
        (" 06:30 ", ResetTime(6, 30)),
    ],
)
def test_parse_valid(value, expected):
    assert ResetTime.parse(value) == expected


@pytest.mark.parametrize("value", ["24:00", "12:60", "1230", "12:5", "noon", "", None, 1230])
def test_parse_invalid(value):
    with pytest.raises(ScheduleConfigInvalid):
        ResetTime.parse(value)


def test_str_is_zero_padded():
    assert str(ResetTime(7, 5)) == "07:05"


def test_invalid_setting_falls_back_to_default():
    assert resolve_reset_time("25:99") == ResetTime(0, 0)
    assert resolve_reset_time(None, "03:30") == ResetTime(3, 30)
    assert resolve_reset_time("bogus", "also bogus") == ResetTime(0, 0)
    assert resolve_reset_time("04:15", "03:30") == ResetTime(4, 15)


def test_occurrence_is_local_wall_clock():
    schedule = DailySchedule(ResetTime(0, 0), SHANGHAI)
    occurrence = schedule.occurrence_on(date(2026, 3, 10))
    assert occurrence.day == date(2026, 3, 10)
    assert occurrence.at == datetime(2026, 3, 9, 16, 0, tzinfo=UTC)


def test_latest_and_next_occurrence():
    schedule = DailySchedule(ResetTime(9, 30), SHANGHAI)
    morning = datetime(2026, 3, 10, 0, 0, tzinfo=UTC)  # 08:00 local

    assert schedule.latest_occurrence(morning).day == date(2026, 3, 9)
    assert schedule.next_occurrence(morning).day == date(2026, 3, 10)

    exactly = datetime(2026, 3, 10, 1, 30, tzinfo=UTC)  # 09:30 local
    assert schedule.latest_occurrence(exactly).at == exactly
    assert schedule.next_occurrence(exactly).day == date(2026, 3, 11)


def test_naive_instants_are_treated_as_utc():
    schedule = DailySchedule(ResetTime(0, 0), SHANGHAI)
    assert schedule.latest_occurrence(datetime(2026, 3, 10, 2, 0)).day == date(2026, 3, 10)


def test_nonexistent_local_time_moves_forward():
    # 02:30 does not exist in Prague on 2026-03-29 (clocks jump 02:00 -> 03:00)
    schedule = DailySchedule(ResetTime(2, 30), PRAGUE)
    occurrence = schedule.occurrence_on(date(2026, 3, 29))
    assert occurrence.at == datetime(2026, 3, 29, 1, 30, tzinfo=UTC)
    assert occurrence.at.astimezone(PRAGUE).hour == 3


def test_ambiguous_local_time_uses_first_occurrence():
    # 02:30 happens twice in Prague on 2026-10-25
    schedule = DailySchedule(ResetTime(2, 30), PRAGUE)
    occurrence = schedule.occurrence_on(date(2026, 10, 25))
    assert occurrence.at == datetime(2026, 10, 25, 0, 30, tzinfo=UTC)
