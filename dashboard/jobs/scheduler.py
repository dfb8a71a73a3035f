from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

log = logging.getLogger("scheduler")

Fetch = Callable[[], Awaitable[Any]]
Apply = Callable[[Any], Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    SKIPPED = "skipped"


class TaskStatus(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"      # fetch or apply had nothing to change
    FAILED = "failed"
    BUSY = "busy"      # previous invocation still in flight, tick not dispatched


@dataclass(frozen=True)
class TaskResult:
    name: str
    status: TaskStatus
    started_at: datetime
    finished_at: datetime
    error_kind: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (TaskStatus.APPLIED, TaskStatus.NOOP)


@dataclass
class TaskStats:
    ticks: int = 0
    dispatched: int = 0
    applied: int = 0
    noop: int = 0
    failed: int = 0
    busy: int = 0


ResultSink = Callable[[TaskResult], None]


def log_task_result(result: TaskResult) -> None:
    """Default sink: every task outcome goes through here."""
    if result.status == TaskStatus.FAILED:
        log.warning(
            "task=%s failed kind=%s error=%s",
            result.name,
            result.error_kind,
            result.error,
        )
    elif result.status == TaskStatus.BUSY:
        log.info("task=%s still in flight, tick skipped", result.name)
    else:
        log.debug("task=%s %s", result.name, result.status.value)


class PeriodicTask:
    """
    One data domain polled on its own cadence.

    IDLE -> FETCHING -> (APPLYING | SKIPPED) -> IDLE

    fetch: coroutine doing the network call (None result = nothing to apply)
    apply: sync callback pushing the result into the store; its return value
           is handed to on_applied (None = nothing changed)
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        fetch: Fetch,
        apply: Apply,
        on_applied: Optional[Callable[[Any], None]] = None,
        fire_immediately: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.fetch = fetch
        self.apply = apply
        self.on_applied = on_applied
        self.fire_immediately = fire_immediately

        self.state = TaskState.IDLE
        self.stats = TaskStats()
        self.last_result: Optional[TaskResult] = None
        self.sink: ResultSink = log_task_result
        self._inflight: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def fire(self) -> bool:
        """
        Dispatch one invocation unless the previous one is still running.
        Returns True when a fetch was dispatched.
        """
        self.stats.ticks += 1
        if self.in_flight:
            now = utcnow()
            self._record(TaskResult(self.name, TaskStatus.BUSY, now, now))
            return False

        self.stats.dispatched += 1
        self._inflight = asyncio.create_task(self.run_once(), name=f"poll:{self.name}")
        return True

    async def wait(self) -> Optional[TaskResult]:
        """Wait for the current invocation (if any) to resolve."""
        if self._inflight is not None:
            await asyncio.shield(self._inflight)
        return self.last_result

    async def run_once(self) -> TaskResult:
        started = utcnow()
        self.state = TaskState.FETCHING
        try:
            payload = await self.fetch()
            if payload is None:
                status = TaskStatus.NOOP
            else:
                self.state = TaskState.APPLYING
                changed = self.apply(payload)
                if changed is None or changed is False:
                    status = TaskStatus.NOOP
                else:
                    status = TaskStatus.APPLIED
                    if self.on_applied is not None:
                        self.on_applied(changed)
            result = TaskResult(self.name, status, started, utcnow())
        except Exception as e:
            # Never crash the loop: log, skip this tick, next tick is the retry.
            self.state = TaskState.SKIPPED
            result = TaskResult(
                self.name,
                TaskStatus.FAILED,
                started,
                utcnow(),
                error_kind=type(e).__name__,
                error=str(e),
            )
        finally:
            self.state = TaskState.IDLE

        self._record(result)
        return result

    async def cancel(self) -> None:
        if self.in_flight:
            self._inflight.cancel()
            try:
                await self._inflight
            except asyncio.CancelledError:
                pass
        self._inflight = None
        self.state = TaskState.IDLE

    def _record(self, result: TaskResult) -> None:
        counter = result.status.value
        setattr(self.stats, counter, getattr(self.stats, counter) + 1)
        # BUSY is a skipped tick, not an outcome; keep the last real one visible.
        if result.status != TaskStatus.BUSY:
            self.last_result = result
        try:
            self.sink(result)
        except Exception:
            log.exception("result sink failed for task=%s", self.name)


class PollScheduler:
    """
    Owns the lifecycle of every PeriodicTask.

    Each task gets its own timer loop armed by wall clock: it fires every
    interval whether or not the last fetch came back, and the task's
    in-flight guard decides if a new fetch is dispatched.
    """

    def __init__(self, tasks: List[PeriodicTask], sink: Optional[ResultSink] = None) -> None:
        names = [t.name for t in tasks]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate task names: {names}")
        self.tasks: Dict[str, PeriodicTask] = {t.name: t for t in tasks}
        if sink is not None:
            for t in tasks:
                t.sink = sink
        self._timers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._timers)

    def start(self) -> None:
        if self.running:
            return
        self._timers = [
            asyncio.create_task(self._timer_loop(task), name=f"timer:{task.name}")
            for task in self.tasks.values()
        ]
        log.info(
            "Scheduler started tasks=%s",
            {name: t.interval_seconds for name, t in self.tasks.items()},
        )

    async def stop(self) -> None:
        """Cancel every timer and every in-flight fetch."""
        timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        for timer in timers:
            try:
                await timer
            except asyncio.CancelledError:
                pass
        for task in self.tasks.values():
            await task.cancel()
        log.info("Scheduler stopped")

    async def _timer_loop(self, task: PeriodicTask) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        if not task.fire_immediately:
            next_at += task.interval_seconds

        while True:
            delay = next_at - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            task.fire()
            next_at += task.interval_seconds
            # Fell behind (event loop stalled): re-anchor instead of bursting.
            if next_at < loop.time():
                next_at = loop.time() + task.interval_seconds

    def results(self) -> Dict[str, Optional[TaskResult]]:
        return {name: t.last_result for name, t in self.tasks.items()}

    def stats(self) -> Dict[str, TaskStats]:
        return {name: t.stats for name, t in self.tasks.items()}
