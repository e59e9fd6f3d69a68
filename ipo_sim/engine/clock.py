from datetime import date, datetime, timezone

import pytz

DEFAULT_TIMEZONE = "Asia/Kolkata"


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """Calendar days come from the configured market timezone."""

    def __init__(self, tz_name: str = DEFAULT_TIMEZONE):
        self.tz = pytz.timezone(tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self.tz).date()


class FixedClock(Clock):
    def __init__(self, today: date, now: datetime = None, tz_name: str = DEFAULT_TIMEZONE):
        super().__init__(tz_name)
        self._today = today
        self._now = now or datetime(today.year, today.month, today.day, 4, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._today

    def set(self, today: date = None, now: datetime = None):
        if today is not None:
            self._today = today
        if now is not None:
            self._now = now
