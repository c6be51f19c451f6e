"""
Bounded-concurrency scheduler.

One scheduling thread pulls candidates, skips filtered and cached ones and
hands the rest to a thread pool of at most `concurrency` probes. Probe
completions are collected back on the scheduling thread, which is the
only writer of the in-flight set, the cache and the result sink.

States: RUNNING <-> PAUSED, RUNNING/PAUSED -> DRAINING on quit,
DRAINING -> DONE at zero in flight, RUNNING -> DONE when the stream is
exhausted and nothing is in flight.

Each dispatch races its probe against a timer that starts when the probe
call actually begins. When the timer fires first the check is completed as
a timeout and its slot is freed; whatever the probe returns later is
discarded. The pool never runs more than `concurrency` probe calls at once,
so an abandoned call delays queued work instead of adding to it.
"""

import enum
import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from controls import ControlPlane
from probes import Probe, ProbeOutcome, run_probe
from results import FilterRule, passes_filters
from resume_cache import CheckedRecord, ResumeCache

log = logging.getLogger("finder.scheduler")


class SchedulerState(enum.Enum):
    RUNNING = "running"
    PAUSED = "paused"
    DRAINING = "draining"
    DONE = "done"


@dataclass(frozen=True)
class Progress:
    checked: int
    available: int


@dataclass
class RunStats:
    generated: int = 0
    filtered: int = 0
    cached: int = 0
    dispatched: int = 0
    checked: int = 0
    available: int = 0
    taken: int = 0
    unknown: int = 0
    invalid: int = 0
    max_in_flight: int = 0
    duration: float = 0.0
    exhausted: bool = False
    state: SchedulerState = SchedulerState.RUNNING

    def as_dict(self) -> dict:
        return {
            "generated": self.generated,
            "filtered": self.filtered,
            "cached": self.cached,
            "dispatched": self.dispatched,
            "checked": self.checked,
            "available": self.available,
            "taken": self.taken,
            "unknown": self.unknown,
            "invalid": self.invalid,
            "max_in_flight": self.max_in_flight,
            "duration": round(self.duration, 3),
            "exhausted": self.exhausted,
            "state": self.state.value,
        }


class Dispatch:
    """One in-flight check. `started_at` is set by the worker once the probe call begins."""

    __slots__ = ("domain", "started_at")

    def __init__(self, domain: str):
        self.domain = domain
        self.started_at: Optional[float] = None

    def mark_started(self, t: float) -> None:
        self.started_at = t

    def deadline(self, timeout: float) -> Optional[float]:
        if self.started_at is None:
            return None
        return self.started_at + timeout


class ResultSink:
    """Append-only, ordered collection of available records."""

    def __init__(self):
        self._records: List[CheckedRecord] = []

    def append(self, rec: CheckedRecord) -> None:
        self._records.append(rec)

    def __iter__(self) -> Iterator[CheckedRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    @property
    def domains(self) -> List[str]:
        return [r.domain for r in self._records]


class Scheduler:
    def __init__(self, candidates: Iterable[str], probe: Probe, concurrency: int = 10,
                 timeout: float = 5.0, filters: Sequence[FilterRule] = (),
                 cache: Optional[ResumeCache] = None, sink: Optional[ResultSink] = None,
                 controls: Optional[ControlPlane] = None,
                 on_progress: Optional[Callable[[Progress], None]] = None,
                 include_cached: bool = False, poll_interval: float = 0.1):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.candidates = candidates
        self._iter = iter(candidates)
        self.probe = probe
        self.concurrency = int(concurrency)
        self.timeout = float(timeout)
        self.filters = list(filters)
        self.cache = cache
        self.sink = sink if sink is not None else ResultSink()
        self.controls = controls or ControlPlane()
        self.on_progress = on_progress
        self.include_cached = include_cached
        self.poll_interval = poll_interval
        self.state = SchedulerState.RUNNING
        self.stats = RunStats()
        self._in_flight: Dict[Future, Dispatch] = {}
        self._exhausted = False

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # ------------------------------- state -------------------------------

    def _observe_controls(self) -> None:
        if self.state in (SchedulerState.DRAINING, SchedulerState.DONE):
            return
        if self.controls.quitting:
            log.info("Draining | in_flight=%d", self.in_flight)
            self.state = SchedulerState.DRAINING
        elif self.controls.paused and self.state is SchedulerState.RUNNING:
            log.info("Paused | in_flight=%d", self.in_flight)
            self.state = SchedulerState.PAUSED
        elif not self.controls.paused and self.state is SchedulerState.PAUSED:
            log.info("Resumed")
            self.state = SchedulerState.RUNNING

    def _finished(self) -> bool:
        if self._in_flight:
            return False
        return self.state is SchedulerState.DRAINING or self._exhausted

    # ------------------------------- scheduling -------------------------------

    def _pull(self) -> Optional[str]:
        if self._exhausted:
            return None
        try:
            return next(self._iter)
        except StopIteration:
            self._exhausted = True
            log.debug("Candidate stream exhausted | generated=%d", self.stats.generated)
            return None

    def _skip_cached(self, domain: str) -> bool:
        if self.cache is None or not self.cache.has(domain):
            return False
        self.stats.cached += 1
        if self.include_cached:
            rec = self.cache.get(domain)
            if rec is not None and rec.available is True:
                self.sink.append(rec)
        return True

    def _fill(self, pool: ThreadPoolExecutor) -> None:
        while self.state is SchedulerState.RUNNING and len(self._in_flight) < self.concurrency:
            domain = self._pull()
            if domain is None:
                return
            self.stats.generated += 1
            if self.filters and not passes_filters(domain, self.filters):
                self.stats.filtered += 1
                continue
            if self._skip_cached(domain):
                continue
            dispatch = Dispatch(domain)
            future = pool.submit(run_probe, self.probe, domain, self.timeout, dispatch.mark_started)
            self._in_flight[future] = dispatch
            self.stats.dispatched += 1
            self.stats.max_in_flight = max(self.stats.max_in_flight, len(self._in_flight))

    def _collect(self) -> None:
        if not self._in_flight:
            # nothing to wait on: idle until a control signal or the next poll
            if self.state is SchedulerState.PAUSED:
                self.controls.wait(self.poll_interval)
            return
        done, _ = wait(list(self._in_flight), timeout=self._wait_budget(), return_when=FIRST_COMPLETED)
        for future in done:
            dispatch = self._in_flight.pop(future)
            self._complete(dispatch.domain, future.result())
        self._expire(time.monotonic())

    def _wait_budget(self) -> float:
        """Seconds until the earliest running deadline, capped at the poll interval."""
        deadlines = [d for d in (x.deadline(self.timeout) for x in self._in_flight.values()) if d is not None]
        if not deadlines:
            return self.poll_interval
        return max(0.0, min(self.poll_interval, min(deadlines) - time.monotonic()))

    def _expire(self, now: float) -> None:
        for future, dispatch in list(self._in_flight.items()):
            deadline = dispatch.deadline(self.timeout)
            if deadline is None or now < deadline:
                continue
            del self._in_flight[future]
            if future.done():
                self._complete(dispatch.domain, future.result())
                continue
            log.debug("Timed out | %s | late result discarded", dispatch.domain)
            self._complete(dispatch.domain, ProbeOutcome(None, "timeout"))

    def _complete(self, domain: str, outcome: ProbeOutcome) -> None:
        rec = CheckedRecord.create(domain, outcome.available, outcome.error)
        self.stats.checked += 1
        if rec.available is True:
            self.stats.available += 1
        elif rec.available is False:
            self.stats.taken += 1
        else:
            self.stats.unknown += 1
            log.debug("Unknown outcome | %s -> %s", domain, rec.error)
        if self.cache is not None:
            self.cache.record(rec)
        if rec.available is True:
            self.sink.append(rec)
            log.debug("Available | %s", domain)
        if self.on_progress is not None:
            self.on_progress(Progress(self.stats.checked, self.stats.available))

    def run(self) -> RunStats:
        t0 = time.monotonic()
        log.info("Scheduler start | concurrency=%d timeout=%.2fs", self.concurrency, self.timeout)
        pool = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="probe")
        try:
            while True:
                self._observe_controls()
                self._fill(pool)
                if self._finished():
                    break
                self._collect()
        finally:
            # every dispatch gets a record: it either completes or times out
            while self._in_flight:
                self._collect()
            # abandoned calls may still be running; their results are not wanted
            pool.shutdown(wait=False)
        self.state = SchedulerState.DONE
        self.stats.state = self.state
        self.stats.exhausted = self._exhausted
        self.stats.invalid = getattr(self.candidates, "invalid", 0)
        self.stats.duration = time.monotonic() - t0
        log.info("Scheduler done | generated=%d checked=%d available=%d unknown=%d cached=%d duration=%.1fs",
                 self.stats.generated, self.stats.checked, self.stats.available,
                 self.stats.unknown, self.stats.cached, self.stats.duration)
        return self.stats
