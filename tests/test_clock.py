"""Tests for the Ticker wake source and notifiers."""

import logging
import threading

from studytrack.core.clock import Clock, Ticker
from studytrack.core.models import Cue, FocusPhase
from studytrack.core.notifier import LoggingNotifier


class TestClock:
    def test_now_ms_is_monotonic(self):
        clock = Clock()
        first = clock.now_ms()
        assert clock.now_ms() >= first


class TestTicker:
    def test_calls_callback_until_stopped(self):
        fired = threading.Event()
        ticker = Ticker(0.01, fired.set)
        ticker.start()
        try:
            assert fired.wait(2.0)
            assert ticker.running
        finally:
            ticker.stop()
        assert ticker.running is False

    def test_callback_errors_do_not_stop_loop(self, caplog):
        calls = []
        second_call = threading.Event()

        def _callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("tick failed")
            second_call.set()

        ticker = Ticker(0.01, _callback)
        with caplog.at_level(logging.ERROR):
            ticker.start()
            try:
                assert second_call.wait(2.0)
            finally:
                ticker.stop()
        assert "Ticker callback failed" in caplog.text

    def test_start_twice_keeps_one_thread(self):
        ticker = Ticker(10, lambda: None)
        ticker.start()
        thread = ticker._thread
        ticker.start()
        assert ticker._thread is thread
        ticker.stop()


class TestLoggingNotifier:
    def test_logs_cue_and_phase(self, caplog):
        with caplog.at_level(logging.INFO):
            LoggingNotifier().notify(Cue.COUNTDOWN, FocusPhase.SHORT_BREAK)
        assert "countdown (shortBreak)" in caplog.text
