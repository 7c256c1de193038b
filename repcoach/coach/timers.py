"""Cancellable one-second countdowns on the event loop.

A Countdown owns one asyncio task. The engine stores the live countdown
inside its state value, so replacing the state is what clears the previous
timer: there is never a second handle to forget about.
"""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger("repcoach.timers")


class Countdown:
    """Counts whole seconds down to zero.

    on_tick(remaining) runs after every tick with remaining > 0,
    on_finish() runs once when remaining reaches 0. Both run on the loop.
    tick_seconds=0 makes every tick a bare yield, which tests rely on.
    """

    def __init__(
        self,
        seconds: int,
        on_tick: Callable[[int], None],
        on_finish: Callable[[], None],
        tick_seconds: float = 1.0,
        name: str = "countdown",
    ):
        self.total = int(seconds)
        self.remaining = int(seconds)
        self._on_tick = on_tick
        self._on_finish = on_finish
        self._tick = tick_seconds
        self.name = name
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "Countdown":
        if self._task is not None:
            raise RuntimeError(f"{self.name} already started")
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self._tick)
            self.remaining -= 1
            if self.remaining > 0:
                self._on_tick(self.remaining)
        self._on_finish()

    @property
    def elapsed(self) -> int:
        return self.total - self.remaining

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Stop the countdown. No-op when called from inside its own callbacks."""
        if self._task is None or self._task.done():
            return
        if self._task is asyncio.current_task():
            # Finishing callback replaced the timer, the task ends on its own
            return
        self._task.cancel()
        logger.debug("%s cancelled with %ds left", self.name, self.remaining)

    async def wait(self) -> None:
        """Wait for the countdown to finish or be cancelled."""
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class Delay:
    """A single deferred call (e.g. the announcement after the start message)."""

    def __init__(self, seconds: float, callback: Callable[[], None], name: str = "delay"):
        self._seconds = seconds
        self._callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "Delay":
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        await asyncio.sleep(self._seconds)
        self._callback()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._task is None or self._task.done() or self._task is asyncio.current_task():
            return
        self._task.cancel()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
