"""
Client-side submission guard.

Holds the fingerprints of orders that are on their way to the server. A second
attempt to submit the same order while the first is in flight is refused.
Reservations are released when the request settles; any that are not (crashed
screen, lost response) expire on the next sweep.
"""

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..clock import SystemClock
from ..logger import get_logger
from ..sweeper import PeriodicSweep

logger = get_logger(__name__)


@dataclass
class GuardConfig:
    max_entries: int = 50
    expiration_seconds: float = 180.0
    sweep_interval_seconds: float = 30.0
    sweep_batch_size: int = 20

    def validated(self) -> "GuardConfig":
        """Return a copy where every invalid value is replaced by its default."""
        defaults = GuardConfig()
        minimums = {
            "max_entries": 1,
            "expiration_seconds": 10.0,
            "sweep_interval_seconds": 1.0,
            "sweep_batch_size": 1,
        }
        values = {}
        for name, minimum in minimums.items():
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < minimum:
                logger.warning("Invalid %s=%r, using default %r", name, value, getattr(defaults, name))
                value = getattr(defaults, name)
            values[name] = value
        return GuardConfig(**values)


@dataclass
class Reservation:
    fingerprint: str
    reserved_at: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class SubmissionGuard:
    def __init__(self, config: Optional[GuardConfig] = None, clock=None):
        self.config = (config or GuardConfig()).validated()
        self.clock = clock or SystemClock()
        self._entries: "OrderedDict[str, Reservation]" = OrderedDict()
        self._mutex = threading.Lock()
        self._sweeper: Optional[PeriodicSweep] = None
        self.metrics = {
            "totalReservations": 0,
            "duplicatesPrevented": 0,
            "releases": 0,
            "expired": 0,
            "evicted": 0,
            "cleanupEvents": 0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fp: str) -> bool:
        return self.is_reserved(fp)

    def is_reserved(self, fp: str) -> bool:
        with self._mutex:
            entry = self._entries.get(fp)
            return entry is not None and not self._expired(entry, self.clock.time())

    def get(self, fp: str) -> Optional[Reservation]:
        with self._mutex:
            return self._entries.get(fp)

    def reserve(self, fp: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Reserve `fp` for a submission. False, with nothing changed, if it is
        already reserved; the caller must not send the order in that case.
        """
        now = self.clock.time()
        with self._mutex:
            entry = self._entries.get(fp)
            if entry is not None:
                if not self._expired(entry, now):
                    self.metrics["duplicatesPrevented"] += 1
                    return False
                del self._entries[fp]
                self.metrics["expired"] += 1

            # Full: make room by dropping the oldest reservations
            while len(self._entries) >= self.config.max_entries:
                oldest, _ = self._entries.popitem(last=False)
                self.metrics["evicted"] += 1
                logger.warning("Guard full, evicted reservation %s...", oldest[:16])

            self._entries[fp] = Reservation(fp, now, dict(metadata or {}))
            self.metrics["totalReservations"] += 1
            return True

    def release(self, fp: str) -> bool:
        with self._mutex:
            if self._entries.pop(fp, None) is None:
                return False
            self.metrics["releases"] += 1
            return True

    def sweep(self) -> int:
        """Drop expired reservations, oldest first, at most `sweep_batch_size` per call."""
        now = self.clock.time()
        with self._mutex:
            expired = [fp for fp, entry in self._entries.items() if self._expired(entry, now)]
            batch = expired[: self.config.sweep_batch_size]
            for fp in batch:
                del self._entries[fp]
            if batch:
                self.metrics["expired"] += len(batch)
                self.metrics["cleanupEvents"] += 1
        if batch:
            logger.info("Removed %d expired order hashes (%d left over)", len(batch), len(expired) - len(batch))
        return len(batch)

    def start_sweeper(self) -> PeriodicSweep:
        if self._sweeper is None:
            self._sweeper = PeriodicSweep(self.sweep, self.config.sweep_interval_seconds, "guard-sweeper")
        return self._sweeper.start()

    def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None

    def stats(self) -> dict:
        with self._mutex:
            return {**self.metrics, "pending": len(self._entries)}

    def _expired(self, entry: Reservation, now: float) -> bool:
        return now - entry.reserved_at >= self.config.expiration_seconds
