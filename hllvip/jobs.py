import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

LOGGER = logging.getLogger(__name__)


class PeriodicJob:
    """Runs a coroutine on a fixed interval, skipping firings that overlap a run."""

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[Any]],
        interval: float = 60 * 60,
        initial_delay: float = 30,
    ):
        self.name = name
        self.callback = callback
        self.interval = interval
        self.initial_delay = initial_delay
        self.in_flight = False
        self.runs = 0
        self.skipped = 0
        self._loop_task: Optional[asyncio.Task[None]] = None
        self.run_tasks: Set[asyncio.Task[None]] = set()

    def _claim(self) -> bool:
        if self.in_flight:
            self.skipped += 1
            LOGGER.info("Job %s still running; skipping this firing", self.name)
            return False
        self.in_flight = True
        return True

    async def _run(self) -> None:
        try:
            await self.callback()
            self.runs += 1
        except Exception as exc:
            LOGGER.exception("Job %s failed: %s", self.name, exc)
        finally:
            self.in_flight = False

    async def run_once(self) -> bool:
        if not self._claim():
            return False
        await self._run()
        return True

    def trigger(self) -> bool:
        # claimed before the task exists; a same-tick firing is skipped
        if not self._claim():
            return False
        task = asyncio.create_task(self._run())
        self.run_tasks.add(task)
        task.add_done_callback(self.run_tasks.discard)
        return True

    async def _loop(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            self.trigger()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._loop_task:
            return
        LOGGER.info(
            "Starting job %s (every %ss, first run in %ss)",
            self.name,
            self.interval,
            self.initial_delay,
        )
        self._loop_task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, *self.run_tasks) if t and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._loop_task = None
        self.run_tasks.clear()
        self.in_flight = False
