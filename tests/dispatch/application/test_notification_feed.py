"""Application tests for the notification feed."""

from datetime import UTC, datetime

from dispatch.feed.feed import FeedType, NotificationFeed, format_money
from dispatch.orderservice.fake_adapter import build_order_payload

START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class TestFeed:
    def test_newest_entry_first(self):
        feed = NotificationFeed()
        feed.post("agent-a", FeedType.INFO, "first", at=START)
        feed.post("agent-a", FeedType.SUCCESS, "second", at=START)
        feed.error("agent-a", "third")

        entries = feed.entries("agent-a")

        assert [e.message for e in entries] == ["third", "second", "first"]
        assert [e.sequence for e in entries] == [3, 2, 1]
        assert entries[0].entry_type == FeedType.ERROR.value

    def test_limit_is_respected(self):
        feed = NotificationFeed()
        for i in range(5):
            feed.post("agent-a", FeedType.INFO, f"entry {i}")

        entries = feed.entries("agent-a", limit=2)

        assert [e.message for e in entries] == ["entry 4", "entry 3"]

    def test_feeds_are_per_agent(self):
        feed = NotificationFeed()
        feed.post("agent-a", FeedType.INFO, "for a")
        feed.post("agent-b", FeedType.INFO, "for b")

        assert [e.message for e in feed.entries("agent-a")] == ["for a"]
        assert feed.entries("agent-b")[0].sequence == 1


class TestOfferEventsInFeed:
    def test_offer_and_acceptance_are_announced(self, runtime, order_service):
        order_service.publish(build_order_payload("ord-1", total_cents=10000))
        runtime.pool.refresh()
        runtime.pool.accept("ord-1")

        messages = [e.message for e in runtime.feed.entries("agent-a")]
        assert "New order ORD-1 offered: Rs. 30.00 estimated" in messages
        assert "Order ORD-1 accepted successfully!" in messages
        assert messages[-1] == "You are now online and will receive new orders"


def test_format_money():
    assert format_money(300000) == "Rs. 3,000.00"
    assert format_money(3235) == "Rs. 32.35"
