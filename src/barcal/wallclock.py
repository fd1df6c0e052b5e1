from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

UTC = timezone.utc
WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class WallClock:
    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)

    @property
    def time(self) -> time:
        return time(self.hour, self.minute, self.second)

    def naive(self) -> datetime:
        return datetime(self.year, self.month, self.day, self.hour, self.minute, self.second)


def ensure_aware(instant: datetime) -> datetime:
    # Stored timestamps without an offset are UTC.
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant


class WallClockResolver:
    """Converts between absolute instants and wall-clock fields in the business timezone.

    Every conversion goes through the configured zone explicitly, so results never
    depend on the timezone of the machine running the code.
    """

    def __init__(self, timezone_name: str = "America/Denver") -> None:
        self.timezone_name = timezone_name
        self.tz = ZoneInfo(timezone_name)

    def to_wall_clock(self, instant: datetime) -> WallClock:
        local = ensure_aware(instant).astimezone(self.tz)
        return WallClock(local.year, local.month, local.day, local.hour, local.minute, local.second)

    def from_wall_clock(
        self,
        year: int,
        month: int,
        day: int,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
    ) -> datetime:
        """Return the UTC instant showing the given wall-clock time in the business zone.

        Ambiguous times (the repeated hour when clocks fall back) resolve to the
        earlier of the two instants. Times inside a spring-forward gap resolve to
        the first instant after the gap.
        """
        naive = datetime(year, month, day, hour, minute, second)
        first = naive.replace(tzinfo=self.tz, fold=0)
        instant = first.astimezone(UTC)
        if instant.astimezone(self.tz).replace(tzinfo=None) == naive:
            return instant
        return self._end_of_gap(naive)

    def from_naive(self, local: datetime) -> datetime:
        return self.from_wall_clock(local.year, local.month, local.day, local.hour, local.minute, local.second)

    def _end_of_gap(self, naive: datetime) -> datetime:
        # fold=0 uses the offset in force before the transition, fold=1 the one after;
        # the transition instant lies between the two readings.
        before = naive.replace(tzinfo=self.tz, fold=0)
        after = naive.replace(tzinfo=self.tz, fold=1)
        offset_after = after.utcoffset()
        lo = after.astimezone(UTC)
        hi = before.astimezone(UTC)
        if lo > hi:
            lo, hi = hi, lo
        while hi - lo > timedelta(seconds=1):
            mid = lo + (hi - lo) / 2
            mid = mid.replace(microsecond=0)
            if mid.astimezone(self.tz).utcoffset() == offset_after:
                hi = mid
            else:
                lo = mid
        return hi

    def local_date(self, instant: datetime) -> date:
        return self.to_wall_clock(instant).date

    def start_of_day(self, day: date) -> datetime:
        return self.from_wall_clock(day.year, day.month, day.day)

    def end_of_day(self, day: date) -> datetime:
        return self.start_of_day(day + timedelta(days=1)) - timedelta(microseconds=1)

    def combine(self, day: date, at: time) -> datetime:
        return self.from_wall_clock(day.year, day.month, day.day, at.hour, at.minute, at.second)

    def today(self, now: datetime | None = None) -> date:
        return self.local_date(now or datetime.now(tz=UTC))


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


def date_key(day: date) -> str:
    return day.strftime("%Y-%m-%d")
