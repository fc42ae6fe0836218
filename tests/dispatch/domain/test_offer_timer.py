"""Tests for OfferTimer — deadline-driven countdowns on asyncio."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from dispatch.offer.timer import OfferTimer

START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class SteppingClock:
    """Clock whose sleep advances at most ``step`` seconds per call."""

    def __init__(self, step=None):
        self.now = START
        self.step = step
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        advance = seconds if self.step is None else min(seconds, self.step)
        self.now += timedelta(seconds=advance)
        await asyncio.sleep(0)


class TestExpiry:
    def test_fires_once_after_window(self):
        clock = SteppingClock()
        fired = []
        timer = OfferTimer(lambda order_id: fired.append((order_id, clock())), clock=clock, sleep=clock.sleep)

        async def scenario():
            handle = timer.start("ord-1", 30)
            await handle.task
            return handle

        handle = asyncio.run(scenario())
        assert fired == [("ord-1", START + timedelta(seconds=30))]
        assert handle.fired
        assert handle.done

    def test_never_fires_before_deadline(self):
        clock = SteppingClock(step=7)
        fired_at = []
        timer = OfferTimer(lambda order_id: fired_at.append(clock()), clock=clock, sleep=clock.sleep)

        async def scenario():
            await timer.start("ord-1", 30).task

        asyncio.run(scenario())
        assert fired_at == [START + timedelta(seconds=30)]
        # Remaining time is recomputed from the deadline after every wake-up
        assert clock.sleeps == [30, 23, 16, 9, 2]

    def test_async_callback_is_awaited(self):
        clock = SteppingClock()
        fired = []

        async def on_expired(order_id):
            fired.append(order_id)

        timer = OfferTimer(on_expired, clock=clock, sleep=clock.sleep)

        async def scenario():
            await timer.start("ord-1", 5).task

        asyncio.run(scenario())
        assert fired == ["ord-1"]

    def test_callback_errors_are_contained(self):
        clock = SteppingClock()

        def on_expired(order_id):
            raise RuntimeError("boom")

        timer = OfferTimer(on_expired, clock=clock, sleep=clock.sleep)

        async def scenario():
            handle = timer.start("ord-1", 5)
            await handle.task
            return handle

        assert asyncio.run(scenario()).fired

    def test_window_must_be_positive(self):
        timer = OfferTimer(lambda order_id: None)
        with pytest.raises(ValueError):
            timer.start("ord-1", 0)


class TestCancellation:
    def test_cancel_before_window_prevents_expiry(self):
        clock = SteppingClock(step=10)
        fired = []
        timer = OfferTimer(fired.append, clock=clock, sleep=clock.sleep)

        async def scenario():
            handle = timer.start("ord-1", 30)
            await asyncio.sleep(0)
            timer.cancel(handle)
            await asyncio.gather(handle.task, return_exceptions=True)
            return handle

        handle = asyncio.run(scenario())
        assert fired == []
        assert handle.cancelled
        assert not handle.fired

    def test_cancel_after_expiry_is_a_noop(self):
        clock = SteppingClock()
        fired = []
        timer = OfferTimer(fired.append, clock=clock, sleep=clock.sleep)

        async def scenario():
            handle = timer.start("ord-1", 30)
            await handle.task
            timer.cancel(handle)
            return handle

        handle = asyncio.run(scenario())
        assert fired == ["ord-1"]
        assert handle.fired
        assert not handle.cancelled

    def test_cancel_none_is_a_noop(self):
        OfferTimer(lambda order_id: None).cancel(None)

    def test_timers_are_independent(self):
        clock = SteppingClock(step=5)
        fired = []
        timer = OfferTimer(fired.append, clock=clock, sleep=clock.sleep)

        async def scenario():
            first = timer.start("ord-1", 30)
            second = timer.start("ord-2", 30)
            timer.cancel(first)
            await asyncio.gather(first.task, second.task, return_exceptions=True)

        asyncio.run(scenario())
        assert fired == ["ord-2"]


class TestWithoutEventLoop:
    def test_handle_is_dormant(self):
        timer = OfferTimer(lambda order_id: None, clock=lambda: START)
        handle = timer.start("ord-1", 30)
        assert handle.task is None
        assert handle.deadline == START + timedelta(seconds=30)
        assert not handle.done
