"""DeliveryOrder aggregate — an accepted order driven to completion by one agent.

State Machine:
    ACCEPTED → PICKED_UP → REACHED_STATION → DELIVERED     (station targets)
    ACCEPTED → PICKED_UP → OUT_FOR_DELIVERY → DELIVERED    (address targets)

Exactly one intermediate state occurs per order, picked by the delivery
target. DELIVERED is terminal and is the only state that needs a proof.
There is no cancellation once an order is accepted.
"""

from datetime import datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from dispatch.delivery.events import DeliveryAssigned, DeliveryStatusChanged, OrderDelivered
from dispatch.domain import dispatch
from dispatch.errors import StateError
from dispatch.proof.proof import ProofOfDelivery
from dispatch.shared.target import (
    ContactInfo,
    DeliveryTarget,
    TargetKind,
    contact_from_payload,
    target_from_payload,
)
from dispatch.utils.clock import parse_timestamp, utcnow


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class DeliveryStatus(Enum):
    ACCEPTED = "Accepted"
    PICKED_UP = "Picked_Up"
    REACHED_STATION = "Reached_Station"
    OUT_FOR_DELIVERY = "Out_For_Delivery"
    DELIVERED = "Delivered"


_INTERMEDIATE_STATUS = {
    TargetKind.STATION: DeliveryStatus.REACHED_STATION,
    TargetKind.ADDRESS: DeliveryStatus.OUT_FOR_DELIVERY,
}


def _valid_transitions(kind: TargetKind) -> dict:
    intermediate = _INTERMEDIATE_STATUS[kind]
    return {
        DeliveryStatus.ACCEPTED: {DeliveryStatus.PICKED_UP},
        DeliveryStatus.PICKED_UP: {intermediate},
        intermediate: {DeliveryStatus.DELIVERED},
        DeliveryStatus.DELIVERED: set(),  # terminal
    }


_VALID_TRANSITIONS = {kind: _valid_transitions(kind) for kind in TargetKind}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@dispatch.entity(part_of="DeliveryOrder")
class OrderLine:
    name = String(required=True, max_length=200, sanitize=False)
    quantity = Integer(required=True, min_value=1)
    unit_price_cents = Integer(default=0, min_value=0)


@dispatch.entity(part_of="DeliveryOrder")
class StatusChange:
    """One entry of the append-only status history."""

    status = String(required=True, choices=DeliveryStatus)
    sequence = Integer(required=True, min_value=1)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@dispatch.aggregate
class DeliveryOrder:
    order_id = Identifier(identifier=True)
    agent_id = Identifier(required=True)
    order_number = String(max_length=50, sanitize=False)
    total_cents = Integer(required=True, min_value=0)
    commission_rate = Float(required=True)
    base_fee_cents = Integer(required=True, min_value=0)
    lines = HasMany(OrderLine)
    target = ValueObject(DeliveryTarget, required=True)
    contact = ValueObject(ContactInfo)
    status = String(choices=DeliveryStatus, default=DeliveryStatus.ACCEPTED.value)
    status_history = HasMany(StatusChange)
    proof = ValueObject(ProofOfDelivery)
    created_at = DateTime()
    accepted_at = DateTime()
    delivered_at = DateTime()

    @invariant.post
    def delivered_orders_carry_proof(self):
        delivered = self.status == DeliveryStatus.DELIVERED.value
        if delivered and self.proof is None:
            raise ValidationError({"proof": ["A delivered order must carry a proof of delivery"]})
        if not delivered and self.proof is not None:
            raise ValidationError({"proof": ["Proof of delivery is only attached on delivery"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def assign(
        cls,
        agent_id: str,
        order: dict,
        commission_rate: float,
        base_fee_cents: int,
        accepted_at: datetime | None = None,
    ):
        """Take ownership of a claimed order; it starts in ACCEPTED."""
        now = accepted_at or utcnow()
        target = target_from_payload(order.get("target"))
        delivery = cls(
            order_id=order["order_id"],
            agent_id=agent_id,
            order_number=order.get("order_number") or order["order_id"],
            total_cents=int(order.get("total_cents") or 0),
            commission_rate=float(commission_rate),
            base_fee_cents=base_fee_cents,
            target=target,
            contact=contact_from_payload(order.get("contact")),
            status=DeliveryStatus.ACCEPTED.value,
            created_at=parse_timestamp(order.get("created_at")),
            accepted_at=now,
        )
        for item in order.get("items") or []:
            delivery.add_lines(
                OrderLine(
                    name=item.get("name") or "Item",
                    quantity=int(item.get("quantity") or 1),
                    unit_price_cents=int(item.get("unit_price_cents") or 0),
                )
            )
        delivery.add_status_history(StatusChange(status=DeliveryStatus.ACCEPTED.value, sequence=1, changed_at=now))
        delivery.raise_(
            DeliveryAssigned(
                order_id=delivery.order_id,
                agent_id=agent_id,
                order_number=delivery.order_number,
                total_cents=delivery.total_cents,
                destination=target.describe(),
                accepted_at=now,
            )
        )
        return delivery

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def current_status(self) -> DeliveryStatus:
        return DeliveryStatus(self.status)

    def history(self) -> list[StatusChange]:
        return sorted(self.status_history or [], key=lambda change: change.sequence)

    def next_status(self) -> DeliveryStatus | None:
        """The only status this order may move to next, if any."""
        successors = _VALID_TRANSITIONS[TargetKind(self.target.kind)][self.current_status()]
        return next(iter(successors), None)

    @property
    def is_delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED.value

    # -------------------------------------------------------------------
    # State transition
    # -------------------------------------------------------------------
    def assert_can_transition(self, target_status: DeliveryStatus, proof: ProofOfDelivery | None = None) -> None:
        """Raise ``StateError`` unless ``target_status`` is the immediate successor.

        Also checks the proof precondition, so callers can validate locally
        before telling the order service anything.
        """
        current = self.current_status()
        allowed = _VALID_TRANSITIONS[TargetKind(self.target.kind)][current]
        if target_status not in allowed:
            raise StateError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

        if target_status == DeliveryStatus.DELIVERED:
            if proof is None:
                raise StateError({"proof": ["Proof of delivery is required to mark an order Delivered"]})
            if str(proof.order_id) != str(self.order_id):
                raise StateError({"proof": [f"Proof was captured for order {proof.order_id}, not {self.order_id}"]})
        elif proof is not None:
            raise StateError({"proof": ["Proof of delivery is only accepted for the Delivered transition"]})

    def transition_to(
        self,
        target_status: DeliveryStatus,
        proof: ProofOfDelivery | None = None,
        at: datetime | None = None,
    ) -> None:
        self.assert_can_transition(target_status, proof)

        now = at or utcnow()
        previous = self.current_status()
        with atomic_change(self):
            self.status = target_status.value
            self.add_status_history(
                StatusChange(
                    status=target_status.value,
                    sequence=len(self.status_history or []) + 1,
                    changed_at=now,
                )
            )
            if target_status == DeliveryStatus.DELIVERED:
                self.proof = proof
                self.delivered_at = now

        self.raise_(
            DeliveryStatusChanged(
                order_id=self.order_id,
                agent_id=self.agent_id,
                order_number=self.order_number,
                from_status=previous.value,
                to_status=target_status.value,
                destination=self.target.describe(),
                changed_at=now,
            )
        )
        if target_status == DeliveryStatus.DELIVERED:
            self.raise_(
                OrderDelivered(
                    order_id=self.order_id,
                    agent_id=self.agent_id,
                    order_number=self.order_number,
                    total_cents=self.total_cents,
                    commission_rate=self.commission_rate,
                    base_fee_cents=self.base_fee_cents,
                    proof_kind=proof.kind,
                    delivered_at=now,
                )
            )
