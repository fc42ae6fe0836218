"""Periodic status poller against the order service.

Runs one poll per interval in a cancellable asyncio task. A tick that finds
the previous poll still outstanding is skipped rather than stacked. Failures
are logged and retried at the next tick, never in a tight loop.
"""

import asyncio
import contextlib
from collections.abc import Callable

import structlog

from dispatch.errors import DispatchError

logger = structlog.get_logger(__name__)


class StatusPoller:
    def __init__(self, poll: Callable[[], object], interval_seconds: float, sleep=asyncio.sleep, name: str = "status-poller"):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._poll = poll
        self._interval = interval_seconds
        self._sleep = sleep
        self._name = name
        self._task: asyncio.Task | None = None
        self._polls: set[asyncio.Task] = set()
        self._in_flight = False
        self.completed = 0
        self.skipped = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> asyncio.Task:
        """Schedule the polling loop on the running event loop."""
        if self.running:
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        logger.info("Poller started", poller=self._name, interval_seconds=self._interval)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        for poll in list(self._polls):
            poll.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.gather(self._task, *self._polls, return_exceptions=True)
        self._polls.clear()
        self._task = None
        logger.info("Poller stopped", poller=self._name)

    async def _run(self) -> None:
        while True:
            # Not awaited, so a slow poll cannot push the next tick back
            poll = asyncio.get_running_loop().create_task(self.poll_once())
            self._polls.add(poll)
            poll.add_done_callback(self._polls.discard)
            await self._sleep(self._interval)

    async def poll_once(self) -> bool:
        """Run one poll unless one is already outstanding. Returns whether it ran."""
        if self._in_flight:
            self.skipped += 1
            logger.debug("Poll skipped, previous poll outstanding", poller=self._name)
            return False

        self._in_flight = True
        try:
            result = self._poll()
            if asyncio.iscoroutine(result):
                await result
            self.completed += 1
        except DispatchError as exc:
            self.failures += 1
            logger.warning("Poll failed, retrying next interval", poller=self._name, error=str(exc))
        except Exception:
            self.failures += 1
            logger.exception("Poll crashed", poller=self._name)
        finally:
            self._in_flight = False
        return True
