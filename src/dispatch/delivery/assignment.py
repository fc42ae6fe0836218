"""Delivery assignment — command and handler."""

import json

from protean import handle
from protean.fields import DateTime, Float, Identifier, Integer, Text
from protean.utils.globals import current_domain

from dispatch.delivery.order import DeliveryOrder
from dispatch.domain import dispatch


@dispatch.command(part_of="DeliveryOrder")
class AssignDelivery:
    """Hand a claimed order to the agent, locking in the commission terms."""

    agent_id = Identifier(required=True)
    order = Text(required=True)  # JSON order payload
    commission_rate = Float(required=True)
    base_fee_cents = Integer(required=True)
    accepted_at = DateTime()


@dispatch.command_handler(part_of=DeliveryOrder)
class AssignDeliveryHandler:
    @handle(AssignDelivery)
    def assign_delivery(self, command):
        order = json.loads(command.order) if isinstance(command.order, str) else command.order
        delivery = DeliveryOrder.assign(
            agent_id=command.agent_id,
            order=order,
            commission_rate=command.commission_rate,
            base_fee_cents=command.base_fee_cents,
            accepted_at=command.accepted_at,
        )
        current_domain.repository_for(DeliveryOrder).add(delivery)
        return str(delivery.order_id)
