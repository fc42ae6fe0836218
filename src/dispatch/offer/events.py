"""Offer domain events — immutable facts about an offer's life in the pool."""

from protean.fields import DateTime, Identifier, Integer, String

from dispatch.domain import dispatch


@dispatch.event(part_of="Offer")
class OfferExtended:
    """An order was offered to the agent with a decision deadline."""

    __version__ = 1

    offer_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(sanitize=False)
    total_cents = Integer(required=True)
    estimated_payout_cents = Integer(required=True)
    destination = String(sanitize=False)
    offered_at = DateTime(required=True)
    expires_at = DateTime(required=True)


@dispatch.event(part_of="Offer")
class OfferAccepted:
    """The agent won the order."""

    __version__ = 1

    offer_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(sanitize=False)
    accepted_at = DateTime(required=True)


@dispatch.event(part_of="Offer")
class OfferDeclined:
    """The agent passed on the order."""

    __version__ = 1

    offer_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(sanitize=False)
    reason = String(required=True, sanitize=False)
    declined_at = DateTime(required=True)


@dispatch.event(part_of="Offer")
class OfferExpired:
    """The decision window elapsed without an answer."""

    __version__ = 1

    offer_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(sanitize=False)
    reason = String(required=True, sanitize=False)
    expired_at = DateTime(required=True)


@dispatch.event(part_of="Offer")
class OfferWithdrawn:
    """The order was resolved elsewhere and left the agent's pool."""

    __version__ = 1

    offer_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(sanitize=False)
    reason = String(required=True, sanitize=False)
    withdrawn_at = DateTime(required=True)
