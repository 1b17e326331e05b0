"""
Deferred Task Scheduling

All timer-driven work in the capture engine (debounces, probes, cleanup
windows, field polling) goes through a Scheduler so that it can be
cancelled as a unit and driven by a virtual clock in tests.

Features:
- Millisecond clock (now) shared by every handler
- One-shot and repeating tasks
- CancellationToken scoped to a listening session
- AsyncioScheduler for live capture, ManualScheduler for tests/offline replay
"""

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Set, Tuple

# Configure logging
logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancels every task registered against it, including ones not yet due."""

    def __init__(self, name: str = "session"):
        self.name = name
        self._cancelled = False
        self._tasks: Set["ScheduledTask"] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def register(self, task: "ScheduledTask"):
        self._tasks.add(task)

    def discard(self, task: "ScheduledTask"):
        self._tasks.discard(task)

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        pending = list(self._tasks)
        self._tasks.clear()
        for task in pending:
            task.cancel()
        logger.debug(f"Token '{self.name}' cancelled {len(pending)} pending task(s)")

    def __len__(self) -> int:
        return len(self._tasks)


class ScheduledTask:
    """A deferred callback. Repeating tasks re-arm themselves after each run."""

    def __init__(
        self,
        scheduler: "Scheduler",
        callback: Callable[[], None],
        delay_ms: float,
        token: Optional[CancellationToken] = None,
        repeat: bool = False,
    ):
        self.scheduler = scheduler
        self.callback = callback
        self.delay_ms = max(0.0, float(delay_ms))
        self.token = token
        self.repeat = repeat
        self.cancelled = False
        self.run_count = 0
        self._handle = None
        if token is not None:
            token.register(self)

    @property
    def active(self) -> bool:
        if self.cancelled or (self.token is not None and self.token.cancelled):
            return False
        return self.repeat or self.run_count == 0

    def cancel(self):
        self.cancelled = True
        if self._handle is not None and hasattr(self._handle, "cancel"):
            self._handle.cancel()
        self._handle = None
        if self.token is not None:
            self.token.discard(self)

    def _run(self):
        self._handle = None
        if not self.active:
            return
        self.run_count += 1
        try:
            self.callback()
        except Exception:
            logger.exception("Deferred task failed")
        if self.repeat and self.active:
            self.scheduler._arm(self)
        elif self.token is not None:
            self.token.discard(self)


class Scheduler(ABC):
    """Clock plus deferred execution, in milliseconds."""

    @abstractmethod
    def now(self) -> float:
        """Current time in milliseconds."""

    @abstractmethod
    def _arm(self, task: ScheduledTask):
        """Arrange for task._run() after task.delay_ms."""

    def call_later(
        self,
        delay_ms: float,
        callback: Callable[[], None],
        token: Optional[CancellationToken] = None,
    ) -> ScheduledTask:
        task = ScheduledTask(self, callback, delay_ms, token)
        if task.active:
            self._arm(task)
        return task

    def call_every(
        self,
        interval_ms: float,
        callback: Callable[[], None],
        token: Optional[CancellationToken] = None,
    ) -> ScheduledTask:
        task = ScheduledTask(self, callback, interval_ms, token, repeat=True)
        if task.active:
            self._arm(task)
        return task


class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by the running asyncio event loop.

    The loop is resolved on first use. Reading now() works without a running
    loop (monotonic time, the same clock asyncio loops use); arming a task
    needs one.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                return time.monotonic() * 1000.0
        return self._loop.time() * 1000.0

    def _arm(self, task: ScheduledTask):
        task._handle = self.loop.call_later(task.delay_ms / 1000.0, task._run)


class ManualScheduler(Scheduler):
    """
    Virtual-time scheduler.

    Time only moves when advance() or run_until_idle() is called; due tasks
    run in deadline order with the clock set to each deadline.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, ScheduledTask]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._now

    def _arm(self, task: ScheduledTask):
        heapq.heappush(self._queue, (self._now + task.delay_ms, next(self._sequence), task))

    @property
    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if task.active)

    def advance(self, ms: float):
        """Move the clock forward by ms, running everything that falls due."""
        deadline = self._now + ms
        while self._queue and self._queue[0][0] <= deadline:
            due, _, task = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            task._run()
        self._now = deadline

    def run_until_idle(self, limit_ms: float = 120_000):
        """Run one-shot work until only repeating tasks (or nothing) remain."""
        horizon = self._now + limit_ms
        while self._queue and self._queue[0][0] <= horizon:
            if all(task.repeat or not task.active for _, _, task in self._queue):
                break
            self.advance(self._queue[0][0] - self._now)
