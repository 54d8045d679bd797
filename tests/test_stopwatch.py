"""Unit tests for CountUpTimer."""

from studytrack.core.models import StopwatchStatus
from studytrack.core.stopwatch import CountUpTimer


# ------------------------------------------------------------------
# State machine
# ------------------------------------------------------------------

class TestTransitions:
    def test_starts_idle(self, clock):
        sw = CountUpTimer(clock)
        assert sw.status == StopwatchStatus.IDLE
        assert sw.elapsed_ms() == 0

    def test_start_runs(self, clock):
        sw = CountUpTimer(clock)
        assert sw.start() is True
        assert sw.status == StopwatchStatus.RUNNING

    def test_pause_from_running(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(3)
        assert sw.pause() is True
        assert sw.status == StopwatchStatus.PAUSED
        assert sw.elapsed_ms() == 3000

    def test_pause_when_idle_is_noop(self, clock):
        sw = CountUpTimer(clock)
        assert sw.pause() is False
        assert sw.status == StopwatchStatus.IDLE

    def test_reset_from_any_state(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(10)
        sw.pause()
        sw.reset()
        assert sw.status == StopwatchStatus.IDLE
        assert sw.elapsed_ms() == 0
        assert sw.display_ms == 0


# ------------------------------------------------------------------
# Elapsed-time accounting
# ------------------------------------------------------------------

class TestElapsed:
    def test_pause_resume_accumulates(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(65)
        sw.pause()
        clock.advance(300)  # paused time is not counted
        sw.start()
        clock.advance(5)
        assert sw.end_session_and_get_duration() == 70000

    def test_double_start_does_not_double_count(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(10)
        assert sw.start() is False
        clock.advance(10)
        assert sw.elapsed_ms() == 20000

    def test_double_pause_does_not_double_count(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(10)
        sw.pause()
        clock.advance(10)
        assert sw.pause() is False
        assert sw.elapsed_ms() == 10000

    def test_duration_ignores_stale_display(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(1)
        sw.sample()
        # No samples for a long stretch, as with a throttled tab.
        clock.advance(119)
        assert sw.display_ms == 1000
        assert sw.end_session_and_get_duration() == 120000

    def test_pause_uses_instant_of_pause_not_last_sample(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(2)
        sw.sample()
        clock.advance(0.9)
        sw.pause()
        assert sw.elapsed_ms() == 2900

    def test_duration_independent_of_sampling_interval(self, clock):
        fast, slow = CountUpTimer(clock), CountUpTimer(clock)
        fast.start()
        slow.start()
        for step in range(40):
            clock.advance(0.25)
            fast.sample()
            if step % 13 == 0:
                slow.sample()
        assert fast.end_session_and_get_duration() == slow.end_session_and_get_duration() == 10000


# ------------------------------------------------------------------
# end_session_and_get_duration / sample
# ------------------------------------------------------------------

class TestEndSession:
    def test_end_from_idle_returns_zero(self, clock):
        sw = CountUpTimer(clock)
        assert sw.end_session_and_get_duration() == 0

    def test_end_from_paused(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(4)
        sw.pause()
        clock.advance(50)
        assert sw.end_session_and_get_duration() == 4000

    def test_end_resets(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(4)
        sw.end_session_and_get_duration()
        assert sw.status == StopwatchStatus.IDLE
        assert sw.has_interval is False

    def test_sample_after_pause_is_noop(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(3)
        sw.pause()
        clock.advance(3)
        assert sw.sample() == 3000

    def test_state_snapshot(self, clock):
        sw = CountUpTimer(clock)
        sw.start()
        clock.advance(2)
        sw.pause()
        state = sw.state()
        assert state.status == StopwatchStatus.PAUSED
        assert state.anchor is None
        assert state.accumulated_ms == 2000
