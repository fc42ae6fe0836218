"""Dispatch pool manager — the agent's view of open offers and how they resolve.

Acceptance is two-phase. The order is first claimed locally, which hides it
from ``list_open_offers`` and makes a concurrent local accept fail. Then the
order service, the only arbiter across agents, is asked to claim it. A
remote conflict withdraws the offer, and a transport failure rolls the
local claim back so the agent can retry.
"""

import asyncio
import json
import threading

import structlog
from protean.utils.globals import current_domain

from dispatch.delivery.order import DeliveryOrder
from dispatch.delivery.state_machine import DeliveryStateMachine
from dispatch.domain import dispatch
from dispatch.earnings.ledger import compute_commission
from dispatch.errors import ConflictError, DispatchError, DispatchUnavailable, OrderServiceRejected
from dispatch.feed.feed import FeedType, NotificationFeed
from dispatch.offer.offer import (
    CLAIMED_ELSEWHERE_REASON,
    NO_LONGER_AVAILABLE_REASON,
    TIMEOUT_REASON,
    Offer,
    OfferOutcome,
)
from dispatch.offer.resolution import AcceptOffer, DeclineOffer, ExpireOffer, ExtendOffer, WithdrawOffer
from dispatch.offer.timer import OfferTimer, TimerHandle
from dispatch.orderservice.port import OrderServicePort
from dispatch.session import AgentSession
from dispatch.utils.clock import as_utc, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_DECLINE_REASON = "Declined by agent"
OFFLINE_REASON = "Agent went offline"


class DispatchPool:
    def __init__(
        self,
        session: AgentSession,
        order_service: OrderServicePort,
        state_machine: DeliveryStateMachine,
        feed: NotificationFeed,
        clock=utcnow,
        sleep=asyncio.sleep,
    ):
        self._session = session
        self._order_service = order_service
        self._state_machine = state_machine
        self._feed = feed
        self._clock = clock
        self._timer = OfferTimer(self._on_timer_expired, clock=clock, sleep=sleep)
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._claims: set[str] = set()
        self._settled: set[str] | None = None
        self._handles: dict[str, TimerHandle] = {}

    @property
    def agent_id(self) -> str:
        return self._session.agent_id

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def _pending_offers(self) -> list[Offer]:
        results = (
            current_domain.repository_for(Offer)
            ._dao.query.filter(agent_id=self.agent_id, outcome=OfferOutcome.PENDING.value)
            .all()
        )
        return list(results.items)

    def _pending_offer(self, order_id: str) -> Offer | None:
        results = (
            current_domain.repository_for(Offer)
            ._dao.query.filter(agent_id=self.agent_id, order_id=order_id, outcome=OfferOutcome.PENDING.value)
            .all()
        )
        return results.first if results.items else None

    def list_open_offers(self) -> list[Offer]:
        """Pending offers still inside their window, soonest deadline first."""
        now = self._clock()
        with self._lock:
            claimed = set(self._claims)
        offers = [o for o in self._pending_offers() if o.order_id not in claimed and not o.has_expired(now)]
        return sorted(offers, key=lambda o: o.expires_at)

    def get_offer(self, offer_id: str) -> Offer:
        return current_domain.repository_for(Offer).get(offer_id)

    def timer_handle(self, order_id: str) -> TimerHandle | None:
        return self._handles.get(order_id)

    # -------------------------------------------------------------------
    # Accept
    # -------------------------------------------------------------------
    def accept(self, order_id: str) -> DeliveryOrder:
        now = self._clock()
        with self._lock:
            offer = self._pending_offer(order_id)
            if offer is None or order_id in self._claims or offer.has_expired(now):
                conflict = ConflictError(order_id)
            else:
                conflict = None
                self._claims.add(order_id)

        if conflict is not None:
            self._feed.error(self.agent_id, f"Failed to accept order: {conflict}")
            raise conflict

        try:
            claimed = self._order_service.claim_order(order_id, self.agent_id)
        except ConflictError as exc:
            self._settle(order_id)
            self._release(order_id)
            self._cancel_timer(order_id)
            current_domain.process(
                WithdrawOffer(offer_id=str(offer.id), reason=CLAIMED_ELSEWHERE_REASON, withdrawn_at=self._clock()),
                asynchronous=False,
            )
            logger.info("Offer lost to another agent", order_id=order_id, agent_id=self.agent_id)
            self._feed.error(self.agent_id, f"Failed to accept order: {exc}")
            raise
        except (DispatchUnavailable, OrderServiceRejected) as exc:
            self._release(order_id)
            logger.warning("Claim failed, offer kept", order_id=order_id, agent_id=self.agent_id, error=str(exc))
            self._feed.error(self.agent_id, f"Failed to accept order: {exc}")
            if offer.has_expired(self._clock()):
                self.expire(order_id)
            raise

        self._cancel_timer(order_id)
        accepted_at = self._clock()
        try:
            current_domain.process(
                AcceptOffer(offer_id=str(offer.id), accepted_at=accepted_at),
                asynchronous=False,
            )
            self._settle(order_id)
        finally:
            self._release(order_id)

        logger.info("Offer accepted", order_id=order_id, agent_id=self.agent_id)
        return self._state_machine.take_over(claimed or _snapshot(offer), accepted_at=accepted_at)

    # -------------------------------------------------------------------
    # Decline / expire / withdraw
    # -------------------------------------------------------------------
    def decline(self, order_id: str, reason: str = DEFAULT_DECLINE_REASON) -> Offer | None:
        """Decline locally, then tell the order service if it is reachable."""
        with self._lock:
            if order_id in self._claims:
                logger.info("Decline ignored, claim in flight", order_id=order_id, agent_id=self.agent_id)
                return None
            offer = self._pending_offer(order_id)
        if offer is None:
            return None

        self._cancel_timer(order_id)
        current_domain.process(
            DeclineOffer(offer_id=str(offer.id), reason=reason, declined_at=self._clock()),
            asynchronous=False,
        )
        self._settle(order_id)
        logger.info("Offer declined", order_id=order_id, agent_id=self.agent_id, reason=reason)
        self._notify_declined(order_id, reason)
        return self.get_offer(str(offer.id))

    def expire(self, order_id: str) -> Offer | None:
        """Auto-decline an offer whose window has elapsed."""
        now = self._clock()
        with self._lock:
            if order_id in self._claims:
                return None
            offer = self._pending_offer(order_id)
        if offer is None or not offer.has_expired(now):
            return None

        self._handles.pop(order_id, None)
        current_domain.process(ExpireOffer(offer_id=str(offer.id), expired_at=now), asynchronous=False)
        self._settle(order_id)
        logger.info("Offer expired", order_id=order_id, agent_id=self.agent_id)
        self._notify_declined(order_id, TIMEOUT_REASON)
        return self.get_offer(str(offer.id))

    def expire_overdue(self) -> list[Offer]:
        now = self._clock()
        expired = []
        for offer in self._pending_offers():
            if offer.has_expired(now):
                result = self.expire(offer.order_id)
                if result is not None:
                    expired.append(result)
        return expired

    def _withdraw(self, offer: Offer, reason: str) -> None:
        self._cancel_timer(offer.order_id)
        current_domain.process(
            WithdrawOffer(offer_id=str(offer.id), reason=reason, withdrawn_at=self._clock()),
            asynchronous=False,
        )
        self._settle(offer.order_id)
        logger.info("Offer withdrawn", order_id=offer.order_id, agent_id=self.agent_id, reason=reason)

    def _notify_declined(self, order_id: str, reason: str) -> None:
        try:
            self._order_service.decline_order(order_id, self.agent_id, reason)
        except DispatchError as exc:
            logger.warning("Decline not delivered to order service", order_id=order_id, error=str(exc))

    # -------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------
    def refresh(self) -> list[Offer]:
        """Sync the pool with the order service's open orders.

        Raises ``DispatchUnavailable`` when the service cannot be reached;
        the poller retries at its next tick.
        """
        if not self._session.online:
            logger.debug("Refresh skipped, agent offline", agent_id=self.agent_id)
            return []

        with self._refresh_lock:
            self._sync()
        return self.list_open_offers()

    def _sync(self) -> None:
        self.expire_overdue()
        with self._lock:
            claimed = set(self._claims)
            self._settled = set()
        pending = {offer.order_id: offer for offer in self._pending_offers()}

        try:
            orders = self._order_service.fetch_open_offers(self.agent_id)
            self._reconcile(orders, pending, claimed)
        finally:
            with self._lock:
                self._settled = None

    def _reconcile(self, orders: list[dict], pending: dict[str, Offer], claimed: set[str]) -> None:
        remote_ids = {order["order_id"] for order in orders}

        for order_id in pending:
            if order_id in remote_ids or order_id in claimed:
                continue
            with self._lock:
                offer = None if order_id in self._claims else self._pending_offer(order_id)
            if offer is not None:
                self._withdraw(offer, NO_LONGER_AVAILABLE_REASON)

        for order in orders:
            order_id = order["order_id"]
            if order_id in pending or order_id in claimed:
                continue
            with self._lock:
                # The list may predate an accept or decline that landed mid-fetch
                stale = (
                    order_id in self._claims
                    or order_id in self._settled
                    or self._pending_offer(order_id) is not None
                    or self._owns(order_id)
                )
            if not stale:
                self._extend(order)

    def _owns(self, order_id: str) -> bool:
        results = (
            current_domain.repository_for(DeliveryOrder)
            ._dao.query.filter(order_id=order_id, agent_id=self.agent_id)
            .all()
        )
        return bool(results.items)

    def _extend(self, order: dict) -> None:
        settings = self._session.settings
        window = settings.offer_window_seconds
        payout = compute_commission(int(order.get("total_cents") or 0), settings.commission_rate, settings.base_fee_cents)
        offer_id = current_domain.process(
            ExtendOffer(
                agent_id=self.agent_id,
                order=json.dumps(order),
                window_seconds=window,
                estimated_payout_cents=payout,
                offered_at=self._clock(),
            ),
            asynchronous=False,
        )
        offer = self.get_offer(offer_id)
        self._handles[offer.order_id] = self._timer.start(offer.order_id, window, deadline=as_utc(offer.expires_at))
        logger.info("Offer extended", order_id=offer.order_id, agent_id=self.agent_id, window_seconds=window)

    # -------------------------------------------------------------------
    # Shift
    # -------------------------------------------------------------------
    def go_online(self) -> None:
        if self._session.online:
            return
        self._session.online = True
        self._feed.post(self.agent_id, FeedType.SUCCESS, "You are now online and will receive new orders")
        logger.info("Agent online", agent_id=self.agent_id)

    def go_offline(self) -> None:
        """Stop taking work; pending offers are declined."""
        if not self._session.online:
            return
        self._session.online = False
        for offer in self._pending_offers():
            self.decline(offer.order_id, OFFLINE_REASON)
        self._feed.post(self.agent_id, FeedType.INFO, "You are now offline")
        logger.info("Agent offline", agent_id=self.agent_id)

    def attach_loop(self, loop) -> None:
        self._timer.attach(loop)

    def shutdown(self) -> None:
        for order_id in list(self._handles):
            self._cancel_timer(order_id)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _release(self, order_id: str) -> None:
        with self._lock:
            self._claims.discard(order_id)

    def _settle(self, order_id: str) -> None:
        """Note a resolution so an in-flight refresh does not offer the order again."""
        with self._lock:
            if self._settled is not None:
                self._settled.add(order_id)

    def _cancel_timer(self, order_id: str) -> None:
        self._timer.cancel(self._handles.pop(order_id, None))

    def _on_timer_expired(self, order_id: str) -> None:
        with dispatch.domain_context():
            self.expire(order_id)


def _snapshot(offer: Offer) -> dict:
    """Rebuild the order payload carried by an offer."""
    target = offer.target
    contact = offer.contact
    return {
        "order_id": offer.order_id,
        "order_number": offer.order_number,
        "total_cents": offer.total_cents,
        "items": [
            {"name": line.name, "quantity": line.quantity, "unit_price_cents": line.unit_price_cents}
            for line in offer.lines or []
        ],
        "target": {
            "kind": target.kind,
            "station_name": target.station_name,
            "coach": target.coach,
            "seat": target.seat,
            "address": target.address,
        },
        "contact": {"name": contact.name, "phone": contact.phone} if contact else None,
        "created_at": offer.order_created_at.isoformat() if offer.order_created_at else None,
    }
