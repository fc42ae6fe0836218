"""Offer timer — bounds how long an agent may deliberate on an offer.

Each timer is its own asyncio task sleeping toward an absolute deadline.
The remaining time is recomputed from the deadline on every wake-up, so a
late or early wake-up never shortens or stretches the window. A handle
fires its expiry callback at most once, and never after it was cancelled.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from dispatch.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@dataclass
class TimerHandle:
    order_id: str
    deadline: datetime
    task: asyncio.Task | None = field(default=None, repr=False)
    cancelled: bool = False
    fired: bool = False

    @property
    def done(self) -> bool:
        return self.cancelled or self.fired


class OfferTimer:
    """Starts and cancels per-offer countdowns.

    ``clock`` and ``sleep`` are injectable so tests can run a 30 second
    window without waiting for it. Timers started from a worker thread run
    on the attached loop; with no loop at all the handle is created without
    a task and the pool's overdue sweep expires it instead.
    """

    def __init__(
        self,
        on_expired: Callable[[str], object],
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self._on_expired = on_expired
        self._clock = clock
        self._sleep = sleep
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Run countdowns started from worker threads on ``loop``."""
        self._loop = loop

    def start(self, order_id: str, window_seconds: float, deadline: datetime | None = None) -> TimerHandle:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        handle = TimerHandle(order_id=order_id, deadline=deadline or self._clock() + timedelta(seconds=window_seconds))
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is not None and self._loop.is_running():
                self._loop.call_soon_threadsafe(self._schedule, handle)
            else:
                logger.debug("No running loop, offer timer left to the overdue sweep", order_id=order_id)
            return handle

        self._schedule(handle)
        return handle

    def _schedule(self, handle: TimerHandle) -> None:
        if handle.cancelled:
            return
        handle.task = asyncio.get_running_loop().create_task(
            self._countdown(handle), name=f"offer-timer-{handle.order_id}"
        )

    def cancel(self, handle: TimerHandle | None) -> None:
        """Stop the countdown. A no-op once the handle has fired or was cancelled."""
        if handle is None or handle.done:
            return
        handle.cancelled = True
        task = handle.task
        if task is not None and not task.done():
            task.get_loop().call_soon_threadsafe(task.cancel)

    async def _countdown(self, handle: TimerHandle) -> None:
        while not handle.cancelled:
            remaining = (handle.deadline - self._clock()).total_seconds()
            if remaining <= 0:
                break
            await self._sleep(remaining)

        if handle.cancelled:
            return

        handle.fired = True
        try:
            result = self._on_expired(handle.order_id)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Offer expiry callback failed", order_id=handle.order_id)
