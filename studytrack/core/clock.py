"""Wall-clock source and periodic wake-ups.

Timers read two clocks: a monotonic millisecond counter for measuring
intervals, and the wall clock for stamping session records.  The Ticker
is the periodic wake source; it may be delayed arbitrarily, so nothing
counts its ticks.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Clock:
    """System clock."""

    def now_ms(self) -> float:
        """Monotonic milliseconds. Only differences are meaningful."""
        return time.monotonic() * 1000.0

    def wall(self) -> datetime:
        return datetime.now()


class Ticker:
    """Calls *callback* every *interval* seconds on a daemon thread.

    Exceptions raised by the callback are logged and do not stop the loop.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], object],
        name: str = "studytrack-ticker",
    ) -> None:
        self.interval = interval
        self.callback = callback
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
        self._thread.start()
        logger.debug("Ticker %s started (every %.2fs)", self.name, self.interval)

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.debug("Ticker %s stopped", self.name)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Ticker callback failed")
