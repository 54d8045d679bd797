"""Count-up timer for open-ended focus intervals.

Elapsed time is always computed from clock deltas at the moment it is
needed.  The display value refreshed by ``sample()`` is cosmetic and is
never used for the committed duration, so delayed or skipped samples
cannot introduce drift.
"""

import logging
from typing import Optional

from studytrack.core.clock import Clock
from studytrack.core.models import StopwatchState, StopwatchStatus

logger = logging.getLogger(__name__)


class CountUpTimer:
    """IDLE -> RUNNING <-> PAUSED, back to IDLE via reset."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or Clock()
        self.status = StopwatchStatus.IDLE
        self._anchor: Optional[float] = None
        self._accumulated = 0.0
        self.display_ms = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.status is StopwatchStatus.RUNNING

    @property
    def has_interval(self) -> bool:
        """True while there is running or paused time that has not been ended."""
        return self.status is not StopwatchStatus.IDLE

    def start(self) -> bool:
        """Start or resume. Returns False (no-op) when already running."""
        if self.status is StopwatchStatus.RUNNING:
            return False
        self._anchor = self.clock.now_ms()
        self.status = StopwatchStatus.RUNNING
        self.display_ms = int(self._accumulated)
        logger.debug("Stopwatch started with %.0f ms banked", self._accumulated)
        return True

    def pause(self) -> bool:
        """Bank the time since the anchor. Returns False unless running."""
        if self.status is not StopwatchStatus.RUNNING:
            return False
        self._accumulated = self._elapsed_at(self.clock.now_ms())
        self._anchor = None
        self.status = StopwatchStatus.PAUSED
        self.display_ms = int(self._accumulated)
        logger.debug("Stopwatch paused at %.0f ms", self._accumulated)
        return True

    def reset(self) -> None:
        self.status = StopwatchStatus.IDLE
        self._anchor = None
        self._accumulated = 0.0
        self.display_ms = 0

    def elapsed_ms(self) -> int:
        """Exact elapsed time right now."""
        return int(round(self._elapsed_at(self.clock.now_ms())))

    def sample(self) -> int:
        """Refresh the display value. A sample while not running is a no-op."""
        if self.status is StopwatchStatus.RUNNING:
            self.display_ms = self.elapsed_ms()
        return self.display_ms

    def end_session_and_get_duration(self) -> int:
        """Return the final duration and reset. Returns 0 from IDLE."""
        if self.status is StopwatchStatus.IDLE:
            return 0
        duration = self.elapsed_ms()
        self.reset()
        return duration

    def state(self) -> StopwatchState:
        return StopwatchState(
            status=self.status,
            anchor=self._anchor,
            accumulated_ms=self._accumulated,
            display_ms=self.display_ms,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _elapsed_at(self, now: float) -> float:
        if self.status is StopwatchStatus.RUNNING and self._anchor is not None:
            return self._accumulated + max(0.0, now - self._anchor)
        return self._accumulated
