"""
Clock and local-calendar helpers.

All instants are timezone-aware UTC. Streak days are calendar dates in the
user's own zone, so a user travelling east or west keeps midnight where they
are.
"""
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


class Clock:
    """Source of the current instant."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Clock pinned to a given instant (replays, backfills, tests)

    Example:
        >>> clock = FixedClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))
        >>> clock.advance(days=1)
    """

    def __init__(self, instant: datetime):
        self.set(instant)

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant.astimezone(timezone.utc)

    def advance(self, **delta) -> None:
        self._instant = self._instant + timedelta(**delta)

    def now(self) -> datetime:
        return self._instant


def local_day(instant: datetime, tz: ZoneInfo) -> date:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(tz).date()


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    """Aware local midnight that opens *day*."""
    return datetime.combine(day, time.min, tzinfo=tz)


def streak_lapse_time(last_active_day: date, tz: ZoneInfo) -> datetime:
    """
    Instant at which a streak lapses without further activity: local midnight
    at the end of the day following last_active_day.
    """
    return start_of_day(last_active_day + timedelta(days=2), tz)


def resolve_zone(name: str | None, fallback: str) -> ZoneInfo:
    """ZoneInfo for *name*; unknown or empty names fall back."""
    if name:
        try:
            return ZoneInfo(name)
        except (KeyError, ValueError):
            pass
    return ZoneInfo(fallback)
