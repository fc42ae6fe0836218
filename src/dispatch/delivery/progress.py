"""Delivery progress — command and handler.

Moves a delivery one step along its lifecycle. The proof fields are only
set for the Delivered step.
"""

from protean import handle
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.delivery.order import DeliveryOrder, DeliveryStatus
from dispatch.domain import dispatch
from dispatch.proof.proof import ProofKind, ProofOfDelivery


@dispatch.command(part_of="DeliveryOrder")
class AdvanceDelivery:
    order_id = Identifier(required=True)
    target_status = String(required=True, choices=DeliveryStatus)
    proof_kind = String(choices=ProofKind)
    proof_value = String(max_length=500, sanitize=False)
    proof_order_id = Identifier()
    proof_captured_at = DateTime()
    changed_at = DateTime()


@dispatch.command_handler(part_of=DeliveryOrder)
class DeliveryProgressHandler:
    @handle(AdvanceDelivery)
    def advance_delivery(self, command):
        repo = current_domain.repository_for(DeliveryOrder)
        delivery = repo.get(command.order_id)

        proof = None
        if command.proof_kind:
            proof = ProofOfDelivery(
                kind=command.proof_kind,
                value=command.proof_value,
                order_id=command.proof_order_id or command.order_id,
                captured_at=command.proof_captured_at,
            )

        delivery.transition_to(DeliveryStatus(command.target_status), proof=proof, at=command.changed_at)
        repo.add(delivery)
