"""Proof-of-delivery domain events."""

from protean.fields import DateTime, Identifier

from dispatch.domain import dispatch


@dispatch.event(part_of="OtpChallenge")
class OtpIssued:
    """A fresh OTP was generated for an order and sent to the customer.

    The code itself never leaves the aggregate.
    """

    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    issued_at = DateTime(required=True)
