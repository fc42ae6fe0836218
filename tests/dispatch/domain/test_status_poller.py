"""Tests for StatusPoller — fixed interval, no overlapping polls."""

import asyncio

import pytest

from dispatch.errors import DispatchUnavailable
from dispatch.polling import StatusPoller


class TestPollOnce:
    def test_runs_sync_poll(self):
        calls = []
        poller = StatusPoller(lambda: calls.append(1), interval_seconds=30)
        assert asyncio.run(poller.poll_once()) is True
        assert calls == [1]
        assert poller.completed == 1

    def test_skips_while_previous_poll_is_outstanding(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow_poll():
                await gate.wait()

            poller = StatusPoller(slow_poll, interval_seconds=30)
            first = asyncio.create_task(poller.poll_once())
            await asyncio.sleep(0)
            assert poller.in_flight

            skipped = await poller.poll_once()
            gate.set()
            ran = await first
            return poller, skipped, ran

        poller, skipped, ran = asyncio.run(scenario())
        assert skipped is False
        assert ran is True
        assert poller.skipped == 1
        assert poller.completed == 1
        assert not poller.in_flight

    def test_transient_failure_is_counted_not_raised(self):
        def failing_poll():
            raise DispatchUnavailable("Order service unreachable")

        poller = StatusPoller(failing_poll, interval_seconds=30)
        assert asyncio.run(poller.poll_once()) is True
        assert poller.failures == 1
        assert poller.completed == 0
        assert not poller.in_flight

    def test_unexpected_failure_is_contained(self):
        def broken_poll():
            raise KeyError("order_id")

        poller = StatusPoller(broken_poll, interval_seconds=30)
        asyncio.run(poller.poll_once())
        assert poller.failures == 1


class TestLoop:
    def test_polls_every_interval_until_stopped(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) >= 3:
                await asyncio.Event().wait()
            await asyncio.sleep(0)

        calls = []

        async def scenario():
            poller = StatusPoller(lambda: calls.append(1), interval_seconds=30, sleep=fake_sleep)
            poller.start()
            for _ in range(10):
                await asyncio.sleep(0)
            assert poller.running
            await poller.stop()
            return poller

        poller = asyncio.run(scenario())
        assert sleeps == [30, 30, 30]
        assert len(calls) == 3
        assert not poller.running

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            StatusPoller(lambda: None, interval_seconds=0)
