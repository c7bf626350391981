"""Clock sources used by the lock table, the client guard and the order pipeline.

Every component takes a clock instead of calling time.time() or datetime.now()
itself, so tests can move time forward without sleeping.

Two readings matter: `now()` is naive UTC, which is what the database stores,
and `local_now()` is the restaurant's wall clock, which decides what "today"
means for bill dates and sales periods.
"""

import time
from datetime import date, datetime, timezone, tzinfo
from typing import Optional


class SystemClock:
    """Wall clock. `tz` is the restaurant's zone; None means the server's local zone."""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def time(self) -> float:
        return time.time()

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.time(), tz=timezone.utc).replace(tzinfo=None)

    def local_now(self) -> datetime:
        if self.tz is not None:
            return datetime.fromtimestamp(self.time(), tz=self.tz)
        return datetime.fromtimestamp(self.time()).astimezone()

    def today(self) -> date:
        return self.local_now().date()


class ManualClock(SystemClock):
    """A clock that only moves when told to. Defaults to UTC so tests don't depend on the host."""

    def __init__(self, start: float = 1_700_000_000.0, tz: Optional[tzinfo] = timezone.utc):
        super().__init__(tz)
        self._now = float(start)

    def time(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += float(seconds)
