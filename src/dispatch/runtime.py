"""DispatchRuntime — wires one agent's dispatch components together.

Everything is built from an explicit ``DispatchSettings``; the runtime owns
the order-service adapter, the agent session and the status poller.
"""

import asyncio

import structlog

from dispatch.config import DispatchSettings
from dispatch.delivery.state_machine import DeliveryStateMachine
from dispatch.domain import dispatch
from dispatch.earnings.ledger import EarningsLedger, EarningsSummary, EarningsWindow, ledger_for
from dispatch.feed.feed import NotificationFeed
from dispatch.offer.pool import DispatchPool
from dispatch.orderservice import build_order_service
from dispatch.orderservice.port import OrderServicePort
from dispatch.polling import StatusPoller
from dispatch.proof.verifier import ProofVerifier
from dispatch.session import AgentSession
from dispatch.utils.clock import utcnow
from dispatch.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)


class DispatchRuntime:
    def __init__(
        self,
        settings: DispatchSettings,
        order_service: OrderServicePort | None = None,
        clock=utcnow,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self.session = AgentSession.from_settings(settings)
        self.order_service = order_service or build_order_service(settings)
        self.feed = NotificationFeed()
        self.verifier = ProofVerifier(self.session, self.order_service, clock=clock)
        self.deliveries = DeliveryStateMachine(self.session, self.order_service, self.feed, self.verifier, clock=clock)
        self.pool = DispatchPool(self.session, self.order_service, self.deliveries, self.feed, clock=clock, sleep=sleep)
        self.poller = StatusPoller(self._poll, settings.poll_interval_seconds, sleep=sleep)
        self._clock = clock

    def now(self):
        return self._clock()

    def ledger(self) -> EarningsLedger:
        return ledger_for(self.session.agent_id)

    def earnings(self, window: EarningsWindow | str = EarningsWindow.ALL) -> EarningsSummary:
        return self.ledger().aggregates(EarningsWindow(window), now=self.now())

    def _refresh_in_context(self) -> None:
        with dispatch.domain_context():
            self.pool.refresh()

    async def _poll(self) -> None:
        await asyncio.to_thread(self._refresh_in_context)

    async def start(self) -> None:
        add_context(agent_id=self.session.agent_id)
        self.pool.attach_loop(asyncio.get_running_loop())
        self.poller.start()
        logger.info("Dispatch runtime started", agent_id=self.session.agent_id)

    async def stop(self) -> None:
        await self.poller.stop()
        self.pool.shutdown()
        self.order_service.close()
        logger.info("Dispatch runtime stopped", agent_id=self.session.agent_id)
        clear_context()
