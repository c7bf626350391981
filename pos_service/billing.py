import random
from typing import Optional

from .clock import SystemClock

TEMP_PREFIX = "TEMP-"


class BillNumberAllocator:
    """
    Produces candidate bill numbers: the millisecond timestamp followed by up to
    six random digits, cut to the last 12 characters. Candidates are not unique
    by construction; the order gateway checks them against the database.
    """

    def __init__(self, clock=None, rng: Optional[random.Random] = None, temp_prefix: str = TEMP_PREFIX):
        self.clock = clock or SystemClock()
        self.rng = rng or random.SystemRandom()
        self.temp_prefix = temp_prefix

    def allocate(self) -> str:
        millis = int(self.clock.time() * 1000)
        return f"{millis}{self.rng.randrange(1_000_000)}"[-12:]

    def is_temporary(self, bill_number: Optional[str]) -> bool:
        return bool(bill_number) and str(bill_number).startswith(self.temp_prefix)


def temporary_bill_number(clock=None, rng: Optional[random.Random] = None, prefix: str = TEMP_PREFIX) -> str:
    """Placeholder bill number a client shows until the server assigns the real one."""
    clock = clock or SystemClock()
    rng = rng or random.Random()
    return f"{prefix}{int(clock.time() * 1000)}{rng.randrange(1000)}"
