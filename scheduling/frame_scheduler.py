"""Throttled, cancellable inference loop.

The perception model should run at most once per `min_interval_ms`, even
though frames may be polled much faster (for instance at display refresh
rate). `FrameThrottle` holds the cadence state; `FrameScheduler` drives a
single asyncio task that polls the throttle and awaits one tick callback
at a time, so model invocations never overlap.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], Awaitable[Optional[bool]]]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class FrameThrottle:
    """Minimum-interval gate for inference calls."""

    min_interval_ms: float = 100.0
    last_run_ms: Optional[float] = None

    def should_run(self, now_ms: float) -> bool:
        """Return True and record ``now_ms`` if enough time has elapsed."""
        if self.last_run_ms is not None and now_ms - self.last_run_ms < self.min_interval_ms:
            return False
        self.last_run_ms = now_ms
        return True

    def reset(self) -> None:
        self.last_run_ms = None


class FrameScheduler:
    """Cooperative self-rescheduling tick loop.

    Parameters
    ----------
    callback:
        Coroutine function invoked with the accepted tick time in
        milliseconds. Returning ``False`` ends the loop (e.g. the frame
        source is exhausted); any other value keeps it running.
    min_interval_ms:
        Minimum spacing between accepted ticks.
    poll_interval_ms:
        Delay before re-checking the throttle.
    clock:
        Millisecond clock, injectable for tests.
    """

    def __init__(
        self,
        callback: TickCallback,
        min_interval_ms: float = 100.0,
        poll_interval_ms: float = 16.0,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self.callback = callback
        self.throttle = FrameThrottle(min_interval_ms)
        self.poll_interval_ms = poll_interval_ms
        self.clock = clock
        self.ticks = 0
        self.errors = 0
        self._task: Optional[asyncio.Task] = None
        # Loop stopped from inside its own tick; still finishing that tick.
        self._retiring: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop.

        A loop that was stopped from inside its own tick is allowed to
        finish that tick before the new loop makes its first call.
        """
        if self.running:
            return self._task
        self._generation += 1
        self.throttle.reset()
        previous, self._retiring = self._retiring, None
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation, previous))
        return self._task

    async def stop(self) -> None:
        """Cancel the pending reschedule and wait for the loop to exit.

        A tick that is suspended inside the callback is cancelled before
        its result can be applied.
        """
        self._generation += 1
        current = asyncio.current_task()
        for task in (self._task, self._retiring):
            if task is None or task.done():
                continue
            if task is current:
                # Stopped from inside a tick; the loop exits once it returns.
                self._retiring = task
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._retiring is not current:
            self._retiring = None

    async def wait(self) -> None:
        """Wait until the loop ends, on its own or through `stop`."""
        task = self._task
        if task is not None:
            await asyncio.wait([task])

    async def _run(self, generation: int, previous: Optional[asyncio.Task] = None) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        while self._generation == generation:
            now = self.clock()
            if not self.throttle.should_run(now):
                await asyncio.sleep(self.poll_interval_ms / 1000.0)
                continue

            try:
                keep_going = await self.callback(now)
            except asyncio.CancelledError:
                raise
            except Exception:
                # Nothing from the failed tick is applied; retry on the next one.
                self.errors += 1
                logger.exception("Frame tick failed")
                keep_going = True
            else:
                self.ticks += 1

            if keep_going is False:
                logger.info("Frame scheduler finished after %d ticks", self.ticks)
                break
            await asyncio.sleep(self.poll_interval_ms / 1000.0)
