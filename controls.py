"""
Out-of-band run control: pause / resume / quit.

The scheduler only ever sees a ControlPlane; key presses and signals are
adapters that call into it.
"""

import logging
import os
import select
import signal
import sys
import threading
from typing import Callable, Optional

log = logging.getLogger("finder.controls")


class ControlPlane:
    """Thread-safe pause/quit flags. Every signal is idempotent; quit is final."""

    def __init__(self):
        self._cond = threading.Condition()
        self._paused = False
        self._quitting = False
        self._generation = 0

    @property
    def paused(self) -> bool:
        with self._cond:
            return self._paused

    @property
    def quitting(self) -> bool:
        with self._cond:
            return self._quitting

    def pause(self) -> bool:
        return self._set(paused=True)

    def resume(self) -> bool:
        return self._set(paused=False)

    def quit(self) -> bool:
        with self._cond:
            if self._quitting:
                return False
            self._quitting = True
            self._generation += 1
            self._cond.notify_all()
            return True

    def _set(self, paused: bool) -> bool:
        with self._cond:
            if self._quitting or self._paused == paused:
                return False
            self._paused = paused
            self._generation += 1
            self._cond.notify_all()
            return True

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; return True if a signal arrived meanwhile."""
        with self._cond:
            start = self._generation
            return self._cond.wait_for(lambda: self._generation != start, timeout=timeout)


# ------------------------------- Keyboard -------------------------------

class KeyboardControls:
    """Reads single key presses (p/r/q) from an interactive POSIX terminal."""

    KEYS = {"p": "pause", "r": "resume", "q": "quit"}

    def __init__(self, controls: ControlPlane, stream=None,
                 notify: Optional[Callable[[str], None]] = None):
        self.controls = controls
        self.stream = stream if stream is not None else sys.stdin
        self.notify = notify or (lambda msg: sys.stdout.write(msg))
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._saved_attrs = None

    @property
    def supported(self) -> bool:
        return os.name == "posix" and hasattr(self.stream, "isatty") and self.stream.isatty()

    def handle_key(self, key: str) -> None:
        action = self.KEYS.get((key or "").lower())
        if action == "pause" and self.controls.pause():
            self.notify("\nPaused. Press r to resume, q to quit.\n")
        elif action == "resume" and self.controls.resume():
            self.notify("\nResumed.\n")
        elif action == "quit" and self.controls.quit():
            self.notify("\nQuitting gracefully, waiting for in-flight checks...\n")

    def start(self) -> bool:
        if not self.supported:
            log.debug("Interactive controls disabled | stdin is not a terminal")
            return False
        import termios
        import tty
        fd = self.stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._thread = threading.Thread(target=self._reader, name="keyboard-controls", daemon=True)
        self._thread.start()
        return True

    def _reader(self) -> None:
        while not self._stop.is_set():
            ready, _, _ = select.select([self.stream], [], [], 0.2)
            if not ready:
                continue
            ch = self.stream.read(1)
            if not ch:
                return
            self.handle_key(ch)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._saved_attrs is not None:
            import termios
            termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    def __enter__(self) -> "KeyboardControls":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()


# ------------------------------- Signals -------------------------------

def install_signal_handlers(controls: ControlPlane) -> Callable[[], None]:
    """First SIGINT/SIGTERM asks for a graceful quit, a second SIGINT interrupts. Returns a restore function."""
    previous = {}

    def on_signal(signum, frame):
        if controls.quit():
            log.info("Stop requested | signal=%s | draining in-flight checks", signal.Signals(signum).name)
            return
        if signum == signal.SIGINT:
            raise KeyboardInterrupt

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, on_signal)
        except ValueError:
            # not on the main thread
            log.debug("Signal handler not installed | signal=%s", sig)

    def restore():
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return restore
