"""DeliveryOrder domain events."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from dispatch.domain import dispatch


@dispatch.event(part_of="DeliveryOrder")
class DeliveryAssigned:
    """An accepted order was handed to the agent's state machine."""

    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_number = String(sanitize=False)
    total_cents = Integer(required=True)
    destination = String(sanitize=False)
    accepted_at = DateTime(required=True)


@dispatch.event(part_of="DeliveryOrder")
class DeliveryStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_number = String(sanitize=False)
    from_status = String(required=True, sanitize=False)
    to_status = String(required=True, sanitize=False)
    destination = String(sanitize=False)
    changed_at = DateTime(required=True)


@dispatch.event(part_of="DeliveryOrder")
class OrderDelivered:
    """The order was closed with proof; carries the commission terms it was accepted under."""

    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_number = String(sanitize=False)
    total_cents = Integer(required=True)
    commission_rate = Float(required=True)
    base_fee_cents = Integer(required=True)
    proof_kind = String(required=True, sanitize=False)
    delivered_at = DateTime(required=True)
