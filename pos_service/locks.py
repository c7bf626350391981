"""
Server-side request lock table.

An advisory, time-bounded lock per order fingerprint, shared by every request
the process serves. It narrows the window between "check for duplicates" and
"insert", and nothing more: the unique bill_number column stays the final
authority. Entries that are never released expire after `timeout` seconds so a
hung request cannot block the same order forever.
"""

import itertools
import threading
from typing import Dict, Optional

from .clock import SystemClock
from .logger import get_logger

logger = get_logger(__name__)


class RequestLockTable:
    def __init__(self, timeout: float = 30.0, max_locks: int = 1000, clock=None):
        self.timeout = float(timeout)
        self.max_locks = int(max_locks)
        self.clock = clock or SystemClock()
        self._locks: Dict[str, float] = {}
        # key -> token of the request that holds it
        self._owners: Dict[str, int] = {}
        self._tokens = itertools.count(1)
        self._mutex = threading.Lock()
        self._stats = {
            "totalLocksCreated": 0,
            "totalLocksReleased": 0,
            "totalLocksExpired": 0,
            "totalLocksEvicted": 0,
            "emergencySweeps": 0,
            "lastCleanupTime": None,
            "averageLockDuration": 0.0,
        }

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: str) -> bool:
        return self.is_locked(key)

    def is_locked(self, key: str) -> bool:
        with self._mutex:
            acquired = self._locks.get(key)
            return acquired is not None and self.clock.time() - acquired < self.timeout

    def acquire(self, key: str) -> Optional[int]:
        """
        Take the lock for `key`. Returns an owner token to hand back to
        `release`, or None if a live lock already holds it.
        """
        now = self.clock.time()
        with self._mutex:
            acquired = self._locks.get(key)
            if acquired is not None:
                age = now - acquired
                if age < self.timeout:
                    logger.info("Request lock active for %s..., lock age: %.0fms", key[:16], age * 1000)
                    return None
                # Stale lock from a request that never released it
                self._drop(key)
                self._stats["totalLocksExpired"] += 1
                logger.info("Expired lock removed for %s..., lock age: %.0fms", key[:16], age * 1000)

            if len(self._locks) >= self.max_locks:
                self._emergency_sweep(now)

            token = next(self._tokens)
            self._locks[key] = now
            self._owners[key] = token
            self._stats["totalLocksCreated"] += 1
            return token

    def release(self, key: str, token: Optional[int] = None) -> bool:
        """
        Drop the lock for `key`. With a token, only if that token still owns it:
        a request whose lock expired and was taken over must not free the new
        holder's lock.
        """
        with self._mutex:
            if key not in self._locks:
                return False
            if token is not None and self._owners.get(key) != token:
                logger.info("Lock for %s... is held by a newer request, not released", key[:16])
                return False
            self._drop(key)
            self._stats["totalLocksReleased"] += 1
            return True

    def sweep(self) -> int:
        """Drop every lock older than the timeout. Returns how many were removed."""
        now = self.clock.time()
        with self._mutex:
            removed = self._remove_expired(now)
            self._stats["lastCleanupTime"] = now
            if len(self._locks) > self.max_locks:
                self._emergency_sweep(now)
        if removed:
            logger.info(
                "Cleaned up %d expired locks. Active locks: %d. Avg duration: %.0fms",
                removed, len(self._locks), self._stats["averageLockDuration"] * 1000,
            )
        return removed

    def stats(self) -> dict:
        with self._mutex:
            times = list(self._locks.values())
            return {
                **self._stats,
                "currentLocks": len(times),
                "oldestLock": min(times) if times else None,
                "newestLock": max(times) if times else None,
                "timeout": self.timeout,
                "maxLocks": self.max_locks,
            }

    # The helpers below expect self._mutex to be held.

    def _remove_expired(self, now: float) -> int:
        expired = [(k, now - t) for k, t in self._locks.items() if now - t >= self.timeout]
        for key, _ in expired:
            self._drop(key)
        if expired:
            self._stats["totalLocksExpired"] += len(expired)
            self._stats["averageLockDuration"] = sum(age for _, age in expired) / len(expired)
        return len(expired)

    def _emergency_sweep(self, now: float) -> None:
        self._stats["emergencySweeps"] += 1
        logger.warning("Emergency cleanup: too many locks (%d)", len(self._locks))
        removed = self._remove_expired(now)
        # Still full: give up the oldest locks rather than refuse new orders
        evicted = 0
        while len(self._locks) >= self.max_locks:
            self._drop(next(iter(self._locks)))
            evicted += 1
        self._stats["totalLocksEvicted"] += evicted
        logger.warning("Emergency cleanup removed %d expired and evicted %d live locks", removed, evicted)

    def _drop(self, key: str) -> None:
        del self._locks[key]
        self._owners.pop(key, None)
