"""Payout settlement — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.earnings.ledger import EarningsLedger


@dispatch.command(part_of="EarningsLedger")
class SettlePayout:
    """Record that part of the pending payout was paid out."""

    agent_id = Identifier(required=True)
    amount_cents = Integer(required=True, min_value=1)
    reference = String(max_length=100, sanitize=False)


@dispatch.command_handler(part_of=EarningsLedger)
class SettlementHandler:
    @handle(SettlePayout)
    def settle_payout(self, command):
        repo = current_domain.repository_for(EarningsLedger)
        ledger = repo.get(command.agent_id)
        ledger.settle_payout(command.amount_cents, reference=command.reference)
        repo.add(ledger)
        return ledger.pending_payout_cents
