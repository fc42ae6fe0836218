"""Delivery state machine — drives an accepted order to Delivered.

Every transition is validated locally first, then pushed to the order
service, and only committed locally once the service has accepted it. A
failed step leaves the order exactly where it was.
"""

import json

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from dispatch.delivery.assignment import AssignDelivery
from dispatch.delivery.order import DeliveryOrder, DeliveryStatus
from dispatch.delivery.progress import AdvanceDelivery
from dispatch.errors import DispatchUnavailable, OrderServiceRejected, StateError, VerificationError
from dispatch.feed.feed import NotificationFeed
from dispatch.orderservice.port import OrderServicePort
from dispatch.proof.proof import ProofOfDelivery
from dispatch.proof.verifier import ProofVerifier
from dispatch.session import AgentSession
from dispatch.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class DeliveryStateMachine:
    def __init__(
        self,
        session: AgentSession,
        order_service: OrderServicePort,
        feed: NotificationFeed,
        verifier: ProofVerifier,
        clock=utcnow,
    ):
        self._session = session
        self._order_service = order_service
        self._feed = feed
        self._verifier = verifier
        self._clock = clock

    # -------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------
    def take_over(self, claimed_order: dict, accepted_at=None) -> DeliveryOrder:
        """Become the exclusive owner of an order the pool just won."""
        settings = self._session.settings
        order_id = current_domain.process(
            AssignDelivery(
                agent_id=self._session.agent_id,
                order=json.dumps(claimed_order),
                commission_rate=float(settings.commission_rate),
                base_fee_cents=settings.base_fee_cents,
                accepted_at=accepted_at,
            ),
            asynchronous=False,
        )
        logger.info("Delivery assigned", order_id=order_id, agent_id=self._session.agent_id)
        return self.get(order_id)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get(self, order_id: str) -> DeliveryOrder:
        return current_domain.repository_for(DeliveryOrder).get(order_id)

    def current_status(self, order_id: str) -> DeliveryStatus:
        return self.get(order_id).current_status()

    def deliveries(self) -> list[DeliveryOrder]:
        """All orders this agent has accepted, most recently accepted first."""
        results = (
            current_domain.repository_for(DeliveryOrder)._dao.query.filter(agent_id=self._session.agent_id).all()
        )
        return sorted(results.items, key=lambda d: d.accepted_at, reverse=True)

    def active_order(self) -> DeliveryOrder | None:
        return next((d for d in self.deliveries() if not d.is_delivered), None)

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def transition(self, order_id: str, target_status, proof: ProofOfDelivery | None = None) -> DeliveryOrder:
        try:
            delivery = self.get(order_id)
        except ObjectNotFoundError:
            self._feed.error(self._session.agent_id, f"Order {order_id} is not assigned to you")
            raise

        try:
            target = DeliveryStatus(target_status)
        except ValueError as exc:
            self._feed.error(self._session.agent_id, f"Unknown delivery status {target_status}")
            raise StateError({"status": [f"Unknown delivery status {target_status}"]}) from exc

        try:
            delivery.assert_can_transition(target, proof)
        except StateError as exc:
            self._feed.error(self._session.agent_id, f"Cannot update order {delivery.order_number}: {_first_message(exc)}")
            raise

        try:
            self._order_service.update_order_status(order_id, target.value, proof)
        except DispatchUnavailable as exc:
            logger.warning("Status update failed", order_id=order_id, status=target.value, error=str(exc))
            self._feed.error(self._session.agent_id, f"Failed to update order {delivery.order_number}: {exc}")
            raise
        except OrderServiceRejected as exc:
            self._feed.error(self._session.agent_id, f"Failed to update order {delivery.order_number}: {exc}")
            raise StateError({"status": [str(exc)]}) from exc

        current_domain.process(
            AdvanceDelivery(
                order_id=order_id,
                target_status=target.value,
                proof_kind=proof.kind if proof else None,
                proof_value=proof.value if proof else None,
                proof_order_id=str(proof.order_id) if proof else None,
                proof_captured_at=proof.captured_at if proof else None,
                changed_at=self._clock(),
            ),
            asynchronous=False,
        )
        logger.info("Delivery status changed", order_id=order_id, status=target.value)
        return self.get(order_id)

    def deliver_with_otp(self, order_id: str, code: str) -> DeliveryOrder:
        """Verify the customer's OTP and close the order with it."""
        try:
            proof = self._verifier.verify_otp(order_id, code)
        except VerificationError as exc:
            self._feed.error(self._session.agent_id, f"OTP verification failed: {_first_message(exc)}")
            raise
        return self.transition(order_id, DeliveryStatus.DELIVERED, proof)


def _first_message(exc) -> str:
    for messages in (exc.messages or {}).values():
        if messages:
            return messages[0]
    return str(exc)
