"""
Clock abstraction so every "now" read can be pinned in tests.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Seoul"


class Clock(Protocol):
    tz: tzinfo

    def now(self) -> datetime:
        ...


class SystemClock:
    def __init__(self, timezone: str = DEFAULT_TIMEZONE) -> None:
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock:
    """Returns a pinned instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime, timezone: str = DEFAULT_TIMEZONE) -> None:
        self.tz = ZoneInfo(timezone)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self._instant = instant.astimezone(self.tz)

    def now(self) -> datetime:
        return self._instant

    def advance(self, delta: timedelta) -> None:
        self._instant = self._instant + delta


def today(clock: Clock) -> date:
    return clock.now().date()


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def at_time_of_run(day: date, clock: Clock) -> datetime:
    """Combine a calendar date with the current time of day, in the clock's zone."""
    now = clock.now()
    return datetime.combine(day, now.time(), tzinfo=clock.tz)
