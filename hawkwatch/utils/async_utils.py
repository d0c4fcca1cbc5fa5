"""
Async utilities for scheduled monitoring work.

This module provides the periodic task abstraction used by the health check
and metrics loops: a ticker driven by an injectable clock plus an
``asyncio.Event`` cancellation token. Ticks are launched as independent tasks
so a slow or failing tick never delays or cancels the next one.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .logging import get_logger


class Clock(ABC):
    """Time source for periodic tasks."""

    @abstractmethod
    def monotonic(self) -> float:
        """Current monotonic time in seconds."""

    @abstractmethod
    async def wait(self, stop_event: asyncio.Event, timeout: float) -> bool:
        """
        Wait until ``stop_event`` is set or ``timeout`` seconds elapse.

        Returns:
            True if the stop event was set, False on timeout
        """


class AsyncioClock(Clock):
    """Wall-clock implementation backed by the running event loop."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def wait(self, stop_event: asyncio.Event, timeout: float) -> bool:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False


class PeriodicTask:
    """
    A named ticker with a cancellation token.

    The first tick fires one interval after ``start()``. Each tick runs in
    its own task; exceptions are logged at the tick boundary and never stop
    the ticker.
    """

    def __init__(
        self,
        name: str,
        coro_func: Callable[[], Awaitable[Any]],
        interval: float,
        clock: Optional[Clock] = None
    ):
        if interval <= 0:
            raise ValueError(f"Periodic task '{name}' needs a positive interval, got {interval}")

        self.name = name
        self.interval = interval
        self.clock = clock or AsyncioClock()
        self.stop_event = asyncio.Event()
        self.tick_count = 0
        self.error_count = 0

        self._coro_func = coro_func
        self._runner: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    @property
    def in_flight(self) -> int:
        """Number of ticks currently executing."""
        return len(self._in_flight)

    def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self.is_running:
            raise ValueError(f"Periodic task '{self.name}' already running")

        self.stop_event.clear()
        self._runner = asyncio.create_task(self._run(), name=f"periodic_{self.name}")
        self._logger.info(f"Started periodic task '{self.name}' with {self.interval}s interval")

    async def _run(self) -> None:
        while not self.stop_event.is_set():
            if await self.clock.wait(self.stop_event, self.interval):
                break
            self._launch_tick()

    def _launch_tick(self) -> None:
        task = asyncio.create_task(self._tick(), name=f"periodic_{self.name}_tick")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _tick(self) -> None:
        self.tick_count += 1
        try:
            await self._coro_func()
        except Exception as e:
            self.error_count += 1
            self._logger.error(f"Error in periodic task '{self.name}': {e}")

    async def stop(self, timeout: float = 5.0) -> bool:
        """
        Set the cancellation token and wait for the ticker to exit.

        Ticks already in flight are allowed to finish within ``timeout``.

        Returns:
            True if the ticker and in-flight ticks finished in time
        """
        self.stop_event.set()

        runner = self._runner
        self._runner = None
        stopped = True

        if runner is not None and not runner.done():
            try:
                await asyncio.wait_for(runner, timeout=timeout)
            except asyncio.TimeoutError:
                stopped = False
            except asyncio.CancelledError:
                pass

        if self._in_flight:
            _, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
            if pending:
                stopped = False

        if stopped:
            self._logger.info(f"Stopped periodic task '{self.name}'")
        else:
            self._logger.warning(f"Periodic task '{self.name}' did not stop within {timeout}s")

        return stopped


class PeriodicTaskRunner:
    """Starts and stops a set of named periodic tasks sharing one clock."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or AsyncioClock()
        self._tasks: Dict[str, PeriodicTask] = {}
        self._logger = get_logger(__name__)

    def start_periodic_task(
        self,
        name: str,
        coro_func: Callable[[], Awaitable[Any]],
        interval: float
    ) -> PeriodicTask:
        """
        Start a periodic task.

        Args:
            name: Unique name for the task
            coro_func: Async function to run on every tick
            interval: Seconds between ticks
        """
        if name in self._tasks and self._tasks[name].is_running:
            raise ValueError(f"Periodic task '{name}' already running")

        task = PeriodicTask(name, coro_func, interval, clock=self.clock)
        task.start()
        self._tasks[name] = task
        return task

    def get_task(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    @property
    def task_names(self) -> List[str]:
        return list(self._tasks.keys())

    async def stop_periodic_task(self, name: str, timeout: float = 5.0) -> bool:
        """Stop a specific periodic task."""
        task = self._tasks.pop(name, None)
        if task is None:
            return True
        return await task.stop(timeout)

    async def stop_all_tasks(self, timeout: float = 10.0) -> int:
        """Stop all periodic tasks, returning how many stopped cleanly."""
        task_names = list(self._tasks.keys())
        stopped_count = 0

        for name in task_names:
            if await self.stop_periodic_task(name, timeout / len(task_names)):
                stopped_count += 1

        return stopped_count
