"""Clock adapters: wall time for real sessions, a settable clock for tests."""

import time

from recall.domain.constants import DAY_MS, DEFAULT_ROLLOVER_HOUR, HOUR_MS, MINUTE_MS
from recall.domain.ports import Clock


class _BucketedClock(Clock):
    """
    Day buckets start at `rollover_hour` in a fixed UTC offset.

    No calendar or timezone database is involved: a bucket is a plain
    integer division of the shifted instant.
    """

    def __init__(self, rollover_hour: int = DEFAULT_ROLLOVER_HOUR, utc_offset_minutes: int = 0):
        if not 0 <= rollover_hour <= 23:
            raise ValueError(f"rollover_hour must be in 0..23, got {rollover_hour}")
        self.rollover_hour = rollover_hour
        self._shift = utc_offset_minutes * MINUTE_MS - rollover_hour * HOUR_MS

    def day_bucket(self, instant: int) -> int:
        return (instant + self._shift) // DAY_MS

    def start_of_day(self, day: int) -> int:
        """First instant (epoch ms) belonging to a day bucket."""
        return day * DAY_MS - self._shift


class SystemClock(_BucketedClock):
    def now(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock(_BucketedClock):
    """A clock that only moves when told to."""

    def __init__(
        self,
        start: int = 0,
        rollover_hour: int = 0,
        utc_offset_minutes: int = 0,
    ):
        super().__init__(rollover_hour=rollover_hour, utc_offset_minutes=utc_offset_minutes)
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, instant: int) -> None:
        self._now = instant

    def advance(self, minutes: int = 0, days: int = 0, ms: int = 0) -> int:
        self._now += minutes * MINUTE_MS + days * DAY_MS + ms
        return self._now
