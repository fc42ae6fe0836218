import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from protean.integrations.pytest import DomainFixture

from dispatch.config import DispatchSettings
from dispatch.orderservice.fake_adapter import FakeOrderService
from dispatch.runtime import DispatchRuntime

# A Monday, so "today", "week" and "month" windows are easy to reason about
START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeClock:
    """Manual clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, now: datetime = START):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(max(seconds, 0))
        await asyncio.sleep(0)


@pytest.fixture(scope="session")
def dispatch_bed():
    from dispatch.domain import dispatch

    bed = DomainFixture(dispatch)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(dispatch_bed):
    with dispatch_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def order_service():
    return FakeOrderService()


@pytest.fixture()
def make_runtime(order_service, clock):
    """Build an online runtime for an agent, sharing one order service and clock."""

    def _make(agent_id: str = "agent-a", **overrides) -> DispatchRuntime:
        settings = DispatchSettings(agent_id=agent_id, agent_name=f"Agent {agent_id}", **overrides)
        runtime = DispatchRuntime(settings, order_service=order_service, clock=clock, sleep=clock.sleep)
        runtime.pool.go_online()
        return runtime

    return _make


@pytest.fixture()
def runtime(make_runtime):
    return make_runtime("agent-a")
