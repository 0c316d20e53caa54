"""Bounded-concurrency task fan-out with per-task failure isolation.

All queues share one process-wide ``ThreadPoolExecutor`` sized by
``SURGE_WORKER_COUNT``; a :class:`WorkQueue` is a lightweight handle that
tracks only the tasks submitted through it.  Each task is a zero-argument
callable.  Exceptions are caught at the task boundary and recorded as a
failed :class:`TaskOutcome`; they never reach sibling tasks or the caller.

``on_drain(callback)`` fires exactly once, after every task submitted
before the registration has finished.  It runs on an executor thread, also
when nothing is pending, so registering never blocks the caller (inline only
once the executor is shut down).  The callback receives the outcomes
recorded so far.
"""
from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from app.core.settings import get_settings

logger = logging.getLogger(__name__)

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            workers = max(1, get_settings().surge_worker_count)
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="surge-build")
        return _executor


def shutdown_executor(wait: bool = True) -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None


@dataclass
class TaskOutcome:
    name: str
    ok: bool
    result: Any = None
    error: BaseException | None = None


DrainCallback = Callable[[list[TaskOutcome]], None]


@dataclass
class _DrainWaiter:
    callback: DrainCallback
    waiting_on: set[int]


class WorkQueue:
    """Submit tasks to a shared executor and get told when they are done."""

    def __init__(self, executor: Executor | None = None) -> None:
        self._executor = executor or get_executor()
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._pending: set[int] = set()
        self._outcomes: list[TaskOutcome] = []
        self._waiters: list[_DrainWaiter] = []

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def outcomes(self) -> list[TaskOutcome]:
        with self._lock:
            return list(self._outcomes)

    def submit(self, task: Callable[[], Any], *, name: str) -> None:
        seq = next(self._seq)
        with self._lock:
            self._pending.add(seq)
        try:
            self._executor.submit(self._run, seq, name, task)
        except RuntimeError as exc:
            # Executor already shut down; account for the task so drain still fires.
            logger.error("Could not schedule task %s: %s", name, exc)
            self._finish(seq, TaskOutcome(name=name, ok=False, error=exc))

    def on_drain(self, callback: DrainCallback) -> None:
        with self._lock:
            waiting_on = set(self._pending)
            if waiting_on:
                self._waiters.append(_DrainWaiter(callback=callback, waiting_on=waiting_on))
                return
            outcomes = list(self._outcomes)
        try:
            self._executor.submit(self._fire, callback, outcomes)
        except RuntimeError as exc:
            logger.warning("Executor unavailable for drain callback, running inline: %s", exc)
            self._fire(callback, outcomes)

    # -- internals ----------------------------------------------------------

    def _run(self, seq: int, name: str, task: Callable[[], Any]) -> None:
        try:
            outcome = TaskOutcome(name=name, ok=True, result=task())
        except Exception as exc:
            logger.error("Task %s failed: %s: %s", name, type(exc).__name__, exc)
            outcome = TaskOutcome(name=name, ok=False, error=exc)
        self._finish(seq, outcome)

    def _finish(self, seq: int, outcome: TaskOutcome) -> None:
        ready: list[_DrainWaiter] = []
        with self._lock:
            self._pending.discard(seq)
            self._outcomes.append(outcome)
            for waiter in self._waiters:
                waiter.waiting_on.discard(seq)
                if not waiter.waiting_on:
                    ready.append(waiter)
            if ready:
                self._waiters = [w for w in self._waiters if w.waiting_on]
            outcomes = list(self._outcomes)
        for waiter in ready:
            self._fire(waiter.callback, outcomes)

    @staticmethod
    def _fire(callback: DrainCallback, outcomes: list[TaskOutcome]) -> None:
        try:
            callback(outcomes)
        except Exception:
            logger.exception("Drain callback failed")
