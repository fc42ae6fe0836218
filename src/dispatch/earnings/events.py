"""EarningsLedger domain events."""

from protean.fields import DateTime, Identifier, Integer, String

from dispatch.domain import dispatch


@dispatch.event(part_of="EarningsLedger")
class EarningsBooked:
    __version__ = 1

    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(sanitize=False)
    gross_cents = Integer(required=True)
    commission_cents = Integer(required=True)
    pending_payout_cents = Integer(required=True)
    recorded_at = DateTime(required=True)


@dispatch.event(part_of="EarningsLedger")
class PayoutSettled:
    """Part of the pending payout was paid out to the agent."""

    __version__ = 1

    agent_id = Identifier(required=True)
    amount_cents = Integer(required=True)
    reference = String(sanitize=False)
    pending_payout_cents = Integer(required=True)
    settled_at = DateTime(required=True)
