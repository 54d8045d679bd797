"""Focus-cycle (Pomodoro) scheduler for StudyTrack.

Counts down fixed-length WORK / SHORT_BREAK / LONG_BREAK phases and
advances to the next phase on its own.  The countdown is anchored to an
expected end time, so each tick recomputes the remaining seconds instead
of decrementing a counter.  Every completed work phase is committed at
its full configured length through the ``on_work_completed`` callback.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from studytrack.core.clock import Clock
from studytrack.core.errors import InvalidPhaseTransition
from studytrack.core.models import Cue, FocusCycleState, FocusPhase, Selection
from studytrack.core.notifier import Notifier, NullNotifier

logger = logging.getLogger(__name__)

WorkCompletedCallback = Callable[[int, Optional[Selection]], None]


@dataclass(frozen=True)
class PomodoroSettings:
    """Phase lengths in seconds and cycle rules."""
    work_seconds: int = 25 * 60
    short_break_seconds: int = 5 * 60
    long_break_seconds: int = 15 * 60
    long_break_interval: int = 4
    near_end_seconds: int = 3
    auto_advance_delay_seconds: float = 0.0

    def length(self, phase: FocusPhase) -> int:
        if phase is FocusPhase.WORK:
            return self.work_seconds
        if phase is FocusPhase.SHORT_BREAK:
            return self.short_break_seconds
        return self.long_break_seconds


class FocusCycleScheduler:
    """Drives the repeating work/break cycle.

    Public methods return a list of event strings, like the rest of the
    engine:

    - ``'phase_started'``   – a countdown was armed
    - ``'phase_paused'``    – a work countdown was frozen
    - ``'phase_near_end'``  – the near-end threshold was crossed
    - ``'work_completed'``  – a work phase ran out and was committed
    - ``'break_completed'`` – a break ran out
    - ``'break_started'`` / ``'work_started'`` – the next phase was armed
    """

    def __init__(
        self,
        settings: Optional[PomodoroSettings] = None,
        clock: Optional[Clock] = None,
        on_work_completed: Optional[WorkCompletedCallback] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.settings = settings or PomodoroSettings()
        self.clock = clock or Clock()
        self.on_work_completed = on_work_completed
        self.notifier = notifier or NullNotifier()
        self.phase = FocusPhase.WORK
        self.is_active = False
        self.cycle_count = 0
        self.owner: Optional[Selection] = None  # selection at work-phase start
        self._remaining_ms = float(self.settings.work_seconds * 1000)
        self._expected_end: Optional[float] = None
        self._completion_handled = False
        self._restart_at: Optional[float] = None
        self._near_end_cued = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def seconds_remaining(self) -> int:
        return _whole_seconds(self._remaining_ms)

    @property
    def restart_pending(self) -> bool:
        """True while waiting out the delay before the next phase auto-starts."""
        return not self.is_active and self._restart_at is not None

    def state(self) -> FocusCycleState:
        return FocusCycleState(
            phase=self.phase,
            is_active=self.is_active,
            seconds_remaining=self.seconds_remaining,
            cycle_count=self.cycle_count,
        )

    def elapsed_work_ms(self) -> int:
        """Time spent in the current work phase so far, computed now."""
        if self.phase is not FocusPhase.WORK:
            return 0
        total = self.settings.work_seconds * 1000
        return int(round(max(0.0, total - self._current_remaining_ms())))

    def next_break(self, cycle_count: int) -> FocusPhase:
        """Long break when *cycle_count* is a positive multiple of the interval."""
        interval = self.settings.long_break_interval
        if cycle_count > 0 and cycle_count % interval == 0:
            return FocusPhase.LONG_BREAK
        return FocusPhase.SHORT_BREAK

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_timer(self, owner: Optional[Selection] = None) -> list[str]:
        """Arm the countdown for the current phase. No-op when already active."""
        if self.is_active:
            return []
        if owner is not None:
            self.owner = owner
        if self._remaining_ms <= 0:
            self._remaining_ms = float(self.settings.length(self.phase) * 1000)
        self._expected_end = self.clock.now_ms() + self._remaining_ms
        self.is_active = True
        self._restart_at = None
        self._completion_handled = False
        logger.info("%s phase started (%ds remaining)", self.phase.value, self.seconds_remaining)
        self._cue(Cue.START)
        return ["phase_started"]

    def pause_timer(self) -> list[str]:
        """Freeze a running work phase.

        Pausing while not active is a no-op.  Breaks cannot be paused and
        raise ``InvalidPhaseTransition``.
        """
        if not self.is_active:
            return []
        if self.phase is not FocusPhase.WORK:
            raise InvalidPhaseTransition("pause", self.phase.value)
        remaining = self._current_remaining_ms()
        if _whole_seconds(remaining) <= 0:
            return self.tick()
        self._remaining_ms = remaining
        self._expected_end = None
        self.is_active = False
        logger.info("Work phase paused with %ds remaining", self.seconds_remaining)
        return ["phase_paused"]

    def reset_timer(self, phase: FocusPhase = FocusPhase.WORK) -> None:
        self.phase = phase
        self.is_active = False
        self._expected_end = None
        self._remaining_ms = float(self.settings.length(phase) * 1000)
        self._near_end_cued = False

    def reset_cycle(self) -> None:
        """Discard the whole cycle: back to an idle work phase, counter cleared."""
        self.reset_timer(FocusPhase.WORK)
        self.cycle_count = 0
        self.owner = None
        self._restart_at = None
        self._completion_handled = False

    def tick(self) -> list[str]:
        """Recompute the countdown. Safe to call at any time, any number of times."""
        now = self.clock.now_ms()
        if not self.is_active:
            if self._restart_at is not None and now >= self._restart_at:
                return self.start_timer()
            return []

        remaining = self._current_remaining_ms(now)
        if _whole_seconds(remaining) > 0:
            self._remaining_ms = remaining
            events: list[str] = []
            if not self._near_end_cued and self.seconds_remaining <= self.settings.near_end_seconds:
                self._near_end_cued = True
                self._cue(Cue.COUNTDOWN)
                events.append("phase_near_end")
            return events

        self._remaining_ms = 0.0
        self._expected_end = None
        self.is_active = False
        return self.handle_completion()

    def handle_completion(self) -> list[str]:
        """Commit and advance after a phase ran out. Fires once per phase."""
        if self._completion_handled or self.is_active or self._remaining_ms > 0:
            return []
        self._completion_handled = True
        self._cue(Cue.END)

        events: list[str] = []
        if self.phase is FocusPhase.WORK:
            duration_ms = self.settings.work_seconds * 1000
            if self.on_work_completed is not None:
                self.on_work_completed(duration_ms, self.owner)
            self.cycle_count += 1
            next_phase = self.next_break(self.cycle_count)
            logger.info("Work phase %d completed; next %s", self.cycle_count, next_phase.value)
            events.extend(["work_completed", "break_started"])
        else:
            next_phase = FocusPhase.WORK
            logger.info("%s completed; back to work", self.phase.value)
            events.extend(["break_completed", "work_started"])

        self.reset_timer(next_phase)
        delay_ms = self.settings.auto_advance_delay_seconds * 1000
        if delay_ms > 0:
            self._restart_at = self.clock.now_ms() + delay_ms
        else:
            self.start_timer()
        return events

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _current_remaining_ms(self, now: Optional[float] = None) -> float:
        if not self.is_active or self._expected_end is None:
            return self._remaining_ms
        if now is None:
            now = self.clock.now_ms()
        return self._expected_end - now

    def _cue(self, cue: Cue) -> None:
        try:
            self.notifier.notify(cue, self.phase)
        except Exception:
            logger.exception("Notifier failed for cue %s", cue.value)


def _whole_seconds(milliseconds: float) -> int:
    return int(round(milliseconds / 1000.0))
