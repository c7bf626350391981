import threading
from typing import Callable

from .logger import get_logger

logger = get_logger(__name__)


class PeriodicSweep:
    """
    Runs a sweep function on a daemon thread every `interval` seconds.

    The sweep function itself stays an ordinary method, so tests call it
    directly instead of waiting for the thread.
    """

    def __init__(self, fn: Callable[[], object], interval: float, name: str = "sweep"):
        self.fn = fn
        self.interval = float(interval)
        self.name = name
        self._stop = threading.Event()
        self._thread = None

    def start(self) -> "PeriodicSweep":
        if self._thread and self._thread.is_alive():
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Started %s every %.1fs", self.name, self.interval)
        return self

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Stopped %s", self.name)

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run(self) -> None:
        # Event.wait doubles as an interruptible sleep
        while not self._stop.wait(self.interval):
            try:
                self.fn()
            except Exception:
                # A failing sweep must not kill the thread; the next tick retries.
                logger.exception("%s failed", self.name)
