"""Tests for the control plane and its keyboard/signal adapters."""

import io
import signal
import threading
import time

import pytest

from controls import KeyboardControls, install_signal_handlers


class TestControlPlane:
    def test_initial_state(self, controls):
        assert not controls.paused
        assert not controls.quitting

    def test_pause_resume_are_idempotent(self, controls):
        assert controls.pause() is True
        assert controls.pause() is False
        assert controls.paused
        assert controls.resume() is True
        assert controls.resume() is False
        assert not controls.paused

    def test_quit_is_final(self, controls):
        assert controls.quit() is True
        assert controls.quit() is False
        assert controls.pause() is False
        assert controls.resume() is False
        assert controls.quitting

    def test_wait_times_out_without_signal(self, controls):
        t0 = time.monotonic()
        assert controls.wait(0.05) is False
        assert time.monotonic() - t0 >= 0.04

    def test_wait_wakes_on_signal(self, controls):
        controls.pause()
        threading.Timer(0.05, controls.quit).start()
        t0 = time.monotonic()
        assert controls.wait(5.0) is True
        assert time.monotonic() - t0 < 2.0


class TestKeyboardControls:
    def make(self, controls):
        messages = []
        return KeyboardControls(controls, stream=io.StringIO(), notify=messages.append), messages

    def test_keys_map_to_signals(self, controls):
        kb, messages = self.make(controls)
        kb.handle_key("p")
        assert controls.paused
        kb.handle_key("R")
        assert not controls.paused
        kb.handle_key("q")
        assert controls.quitting
        assert len(messages) == 3
        assert "Paused" in messages[0]

    def test_repeated_and_unknown_keys_are_silent(self, controls):
        kb, messages = self.make(controls)
        kb.handle_key("p")
        kb.handle_key("p")
        kb.handle_key("x")
        kb.handle_key("")
        assert len(messages) == 1

    def test_not_supported_without_terminal(self, controls):
        kb, _ = self.make(controls)
        assert not kb.supported
        assert kb.start() is False
        kb.stop()


class TestSignals:
    def test_first_signal_quits_second_interrupts(self, controls):
        previous = signal.getsignal(signal.SIGINT)
        restore = install_signal_handlers(controls)
        try:
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)
            assert controls.quitting
            with pytest.raises(KeyboardInterrupt):
                handler(signal.SIGINT, None)
        finally:
            restore()
        assert signal.getsignal(signal.SIGINT) is previous

    def test_second_sigterm_is_ignored(self, controls):
        restore = install_signal_handlers(controls)
        try:
            handler = signal.getsignal(signal.SIGTERM)
            handler(signal.SIGTERM, None)
            handler(signal.SIGTERM, None)
            assert controls.quitting
        finally:
            restore()
