"""
Pytest configuration and shared fixtures for the domain finder tests.

Probes here never touch the network: they are stubs that answer from a
table, optionally sleep, and keep track of how many calls overlap.
"""

import threading
import time
from typing import Dict, List, Optional

import pytest

from controls import ControlPlane
from errors import DomainNotFound, ProbeError
from probes import TAKEN


class StubProbe:
    """Answers from `answers`: 'available', 'taken', or an exception instance to raise."""

    def __init__(self, answers: Optional[Dict[str, object]] = None, default="taken",
                 delay: float = 0.0, forbidden: tuple = ()):
        self.answers = dict(answers or {})
        self.default = default
        self.delay = delay
        self.forbidden = set(forbidden)
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def __call__(self, domain: str, timeout: float):
        with self._lock:
            self.calls.append(domain)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if domain in self.forbidden:
                raise AssertionError(f"probe must not be called for {domain}")
            if self.delay:
                time.sleep(self.delay)
            answer = self.answers.get(domain, self.default)
            if isinstance(answer, BaseException):
                raise answer
            if answer == "available":
                raise DomainNotFound(domain)
            if answer == "error":
                raise ProbeError("SERVFAIL")
            return TAKEN
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def stub_probe():
    return StubProbe


@pytest.fixture
def controls() -> ControlPlane:
    return ControlPlane()


@pytest.fixture
def cache_path(tmp_path) -> str:
    return str(tmp_path / "checked_domains.jsonl")


def endless_domains(prefix: str = "n"):
    i = 0
    while True:
        yield f"{prefix}{i}.com"
        i += 1


@pytest.fixture
def endless():
    return endless_domains
