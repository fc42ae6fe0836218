"""Application tests for earnings booking and payout settlement.

Covers:
- OrderDelivered books commission once per order
- a replayed OrderDelivered is dropped
- SettlePayout reduces the pending payout
"""

from datetime import UTC, datetime

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from dispatch.delivery.events import OrderDelivered
from dispatch.earnings.delivery_events import DeliveryEarningsHandler
from dispatch.earnings.ledger import EarningsLedger, EarningsWindow, ledger_for
from dispatch.earnings.settlement import SettlePayout
from dispatch.feed.feed import NotificationFeed

START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _delivered(order_id="ord-1", total_cents=10000, agent_id="agent-a"):
    return OrderDelivered(
        order_id=order_id,
        agent_id=agent_id,
        order_number=order_id.upper(),
        total_cents=total_cents,
        commission_rate=0.1,
        base_fee_cents=2000,
        proof_kind="OTP",
        delivered_at=START,
    )


class TestDeliveryEarningsHandler:
    def test_books_commission(self):
        DeliveryEarningsHandler().on_order_delivered(_delivered(total_cents=12345))

        ledger = current_domain.repository_for(EarningsLedger).get("agent-a")
        assert ledger.pending_payout_cents == 3235
        assert ledger.history()[0].order_number == "ORD-1"

    def test_replayed_delivery_is_not_counted_twice(self):
        handler = DeliveryEarningsHandler()
        handler.on_order_delivered(_delivered())
        handler.on_order_delivered(_delivered())

        ledger = ledger_for("agent-a")
        summary = ledger.aggregates(EarningsWindow.ALL, now=START)
        assert summary.count == 1
        assert summary.total_cents == 3000
        assert ledger.pending_payout_cents == 3000

    def test_ledgers_are_per_agent(self):
        handler = DeliveryEarningsHandler()
        handler.on_order_delivered(_delivered("ord-1", agent_id="agent-a"))
        handler.on_order_delivered(_delivered("ord-2", agent_id="agent-b"))

        assert ledger_for("agent-a").aggregates(EarningsWindow.ALL, now=START).count == 1
        assert ledger_for("agent-b").aggregates(EarningsWindow.ALL, now=START).count == 1

    def test_unknown_agent_has_empty_ledger(self):
        ledger = ledger_for("agent-new")
        assert ledger.pending_payout_cents == 0
        assert ledger.history() == []

    def test_booking_is_announced_in_feed(self):
        DeliveryEarningsHandler().on_order_delivered(_delivered())

        latest = NotificationFeed().entries("agent-a", limit=1)[0]
        assert latest.entry_type == "success"
        assert latest.message == "Order ORD-1 completed! Earned Rs. 30.00"


class TestSettlePayout:
    def test_settlement_reduces_pending_payout(self):
        DeliveryEarningsHandler().on_order_delivered(_delivered())

        pending = current_domain.process(
            SettlePayout(agent_id="agent-a", amount_cents=1000, reference="PAY-001"),
            asynchronous=False,
        )

        assert pending == 2000
        ledger = ledger_for("agent-a")
        assert ledger.settled_cents == 1000
        assert ledger.aggregates(EarningsWindow.ALL, now=START).total_cents == 3000

    def test_cannot_settle_more_than_pending(self):
        DeliveryEarningsHandler().on_order_delivered(_delivered())

        with pytest.raises(ValidationError):
            current_domain.process(
                SettlePayout(agent_id="agent-a", amount_cents=3001),
                asynchronous=False,
            )
        assert ledger_for("agent-a").pending_payout_cents == 3000
