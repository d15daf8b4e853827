"""Long-lived periodic tasks owned by the server lifecycle."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[object]]


class PeriodicTask:
    """Run a coroutine callback every `interval` seconds until stopped.

    Ticks are scheduled against a fixed deadline, so time spent inside the
    callback does not push later ticks back. When a tick overruns a whole
    interval, the missed ticks are skipped rather than replayed in a burst.
    A callback that raises is logged and the loop keeps going.
    """

    def __init__(self, name: str, interval: float, callback: TickCallback) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._name = name
        self._interval = interval
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop. Idempotent."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"periodic:{self._name}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + self._interval
        while True:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            try:
                await self._callback()
            except Exception:
                logger.exception("periodic task %s failed", self._name)

            next_run += self._interval
            now = loop.time()
            if next_run < now:
                next_run = now


class PeriodicTaskGroup:
    """Start and cancel a set of PeriodicTasks together."""

    def __init__(self, tasks: Iterable[PeriodicTask] = ()) -> None:
        self._tasks: list[PeriodicTask] = list(tasks)

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    def start_all(self) -> None:
        for task in self._tasks:
            task.start()
        logger.info("started periodic tasks: %s", ", ".join(task.name for task in self._tasks))

    async def stop_all(self) -> None:
        await asyncio.gather(*(task.stop() for task in self._tasks))
