"""Offer lifecycle — commands and handler.

Extends offers into the agent's pool and resolves them (accept, decline,
expire, withdraw). Callers identify offers by ``offer_id``; the
``DispatchPool`` keeps the order → offer mapping.
"""

import json

from protean import handle
from protean.fields import DateTime, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.offer.offer import Offer


@dispatch.command(part_of="Offer")
class ExtendOffer:
    """Put an order from the order service in front of the agent."""

    agent_id = Identifier(required=True)
    order = Text(required=True)  # JSON order payload
    window_seconds = Float(required=True)
    estimated_payout_cents = Integer(default=0)
    offered_at = DateTime()


@dispatch.command(part_of="Offer")
class AcceptOffer:
    offer_id = Identifier(required=True)
    accepted_at = DateTime()


@dispatch.command(part_of="Offer")
class DeclineOffer:
    offer_id = Identifier(required=True)
    reason = String(required=True, max_length=500, sanitize=False)
    declined_at = DateTime()


@dispatch.command(part_of="Offer")
class ExpireOffer:
    offer_id = Identifier(required=True)
    expired_at = DateTime()


@dispatch.command(part_of="Offer")
class WithdrawOffer:
    """Drop an offer whose order was resolved elsewhere."""

    offer_id = Identifier(required=True)
    reason = String(required=True, max_length=500, sanitize=False)
    withdrawn_at = DateTime()


@dispatch.command_handler(part_of=Offer)
class OfferHandler:
    @handle(ExtendOffer)
    def extend_offer(self, command):
        order = json.loads(command.order) if isinstance(command.order, str) else command.order
        offer = Offer.extend(
            agent_id=command.agent_id,
            order=order,
            window_seconds=command.window_seconds,
            estimated_payout_cents=command.estimated_payout_cents or 0,
            offered_at=command.offered_at,
        )
        current_domain.repository_for(Offer).add(offer)
        return str(offer.id)

    @handle(AcceptOffer)
    def accept_offer(self, command):
        repo = current_domain.repository_for(Offer)
        offer = repo.get(command.offer_id)
        offer.accept(at=command.accepted_at)
        repo.add(offer)

    @handle(DeclineOffer)
    def decline_offer(self, command):
        repo = current_domain.repository_for(Offer)
        offer = repo.get(command.offer_id)
        offer.decline(command.reason, at=command.declined_at)
        repo.add(offer)

    @handle(ExpireOffer)
    def expire_offer(self, command):
        repo = current_domain.repository_for(Offer)
        offer = repo.get(command.offer_id)
        offer.expire(at=command.expired_at)
        repo.add(offer)

    @handle(WithdrawOffer)
    def withdraw_offer(self, command):
        repo = current_domain.repository_for(Offer)
        offer = repo.get(command.offer_id)
        offer.withdraw(command.reason, at=command.withdrawn_at)
        repo.add(offer)
