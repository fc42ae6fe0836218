"""Application tests for DeliveryStateMachine — accepted order through to Delivered.

Covers:
- station and address deliveries walk their own status sequence
- Delivered needs a verified proof for the same order
- a failed remote update leaves the order where it was
- delivering books earnings and posts to the feed
"""

import pytest
from protean.exceptions import ObjectNotFoundError

from dispatch.delivery.order import DeliveryStatus
from dispatch.earnings.ledger import EarningsWindow
from dispatch.errors import DispatchUnavailable, StateError, VerificationError
from dispatch.orderservice.fake_adapter import build_order_payload


def _accept(runtime, order_service, order_id="ord-1", **payload):
    order_service.publish(build_order_payload(order_id, **payload))
    runtime.pool.refresh()
    return runtime.pool.accept(order_id)


def _walk_to_last_mile(runtime, order_id="ord-1"):
    runtime.deliveries.transition(order_id, DeliveryStatus.PICKED_UP)
    delivery = runtime.deliveries.get(order_id)
    return runtime.deliveries.transition(order_id, delivery.next_status())


class TestStatusSequence:
    def test_station_delivery(self, runtime, order_service):
        _accept(runtime, order_service)

        delivery = _walk_to_last_mile(runtime)

        assert delivery.current_status() == DeliveryStatus.REACHED_STATION
        assert [c.status for c in delivery.history()] == ["Accepted", "Picked_Up", "Reached_Station"]
        assert order_service.status_of("ord-1") == "Reached_Station"

    def test_address_delivery(self, runtime, order_service):
        _accept(runtime, order_service, address="12 Galle Road, Colombo 03")

        delivery = _walk_to_last_mile(runtime)

        assert delivery.current_status() == DeliveryStatus.OUT_FOR_DELIVERY
        latest = runtime.feed.entries("agent-a", limit=1)[0]
        assert latest.entry_type == "navigation"
        assert "12 Galle Road, Colombo 03" in latest.message

    def test_skipping_a_status_is_rejected(self, runtime, order_service):
        _accept(runtime, order_service)

        with pytest.raises(StateError):
            runtime.deliveries.transition("ord-1", DeliveryStatus.REACHED_STATION)

        assert runtime.deliveries.current_status("ord-1") == DeliveryStatus.ACCEPTED
        assert order_service.status_of("ord-1") == "Accepted"
        assert runtime.feed.entries("agent-a", limit=1)[0].entry_type == "error"

    def test_unknown_status_is_rejected(self, runtime, order_service):
        _accept(runtime, order_service)
        with pytest.raises(StateError):
            runtime.deliveries.transition("ord-1", "Teleported")

    def test_unassigned_order_is_not_found(self, runtime):
        with pytest.raises(ObjectNotFoundError):
            runtime.deliveries.transition("ord-missing", DeliveryStatus.PICKED_UP)

    def test_failed_remote_update_changes_nothing(self, runtime, order_service):
        _accept(runtime, order_service)
        order_service.configure(should_succeed=False)

        with pytest.raises(DispatchUnavailable):
            runtime.deliveries.transition("ord-1", DeliveryStatus.PICKED_UP)

        delivery = runtime.deliveries.get("ord-1")
        assert delivery.current_status() == DeliveryStatus.ACCEPTED
        assert len(delivery.history()) == 1

        order_service.configure(should_succeed=True)
        delivery = runtime.deliveries.transition("ord-1", DeliveryStatus.PICKED_UP)
        assert delivery.current_status() == DeliveryStatus.PICKED_UP


class TestCompletion:
    def test_otp_delivery_books_earnings(self, runtime, order_service):
        _accept(runtime, order_service, total_cents=10000)
        _walk_to_last_mile(runtime)

        code = runtime.verifier.capture_otp("ord-1")
        delivery = runtime.deliveries.deliver_with_otp("ord-1", code)

        assert delivery.is_delivered
        assert delivery.proof.kind == "OTP"
        assert delivery.delivered_at is not None
        assert order_service.status_of("ord-1") == "Delivered"
        assert order_service.proof_of("ord-1")["kind"] == "OTP"

        summary = runtime.earnings(EarningsWindow.ALL)
        assert summary.count == 1
        assert summary.total_cents == 3000
        assert runtime.ledger().pending_payout_cents == 3000

        messages = [(e.entry_type, e.message) for e in runtime.feed.entries("agent-a")]
        assert ("success", "Order ORD-1 completed! Earned Rs. 30.00") in messages

    def test_photo_proof_delivers(self, runtime, order_service):
        _accept(runtime, order_service)
        _walk_to_last_mile(runtime)

        proof = runtime.verifier.capture_photo("ord-1", "media/ord-1/doorstep.jpg")
        delivery = runtime.deliveries.transition("ord-1", DeliveryStatus.DELIVERED, proof)

        assert delivery.proof.kind == "Photo"
        assert delivery.proof.value == "media/ord-1/doorstep.jpg"

    def test_media_reference_and_address_are_stored_verbatim(self, runtime, order_service):
        media_ref = "https://cdn.example/p.jpg?sig=1&exp=2"
        _accept(runtime, order_service, address="12 A & B Road")
        _walk_to_last_mile(runtime)

        proof = runtime.verifier.capture_photo("ord-1", media_ref)
        delivery = runtime.deliveries.transition("ord-1", DeliveryStatus.DELIVERED, proof)

        assert delivery.proof.value == media_ref
        assert runtime.deliveries.get("ord-1").proof.value == media_ref
        assert delivery.target.address == "12 A & B Road"
        assert order_service.proof_of("ord-1")["value"] == media_ref

    def test_delivered_requires_proof(self, runtime, order_service):
        _accept(runtime, order_service)
        _walk_to_last_mile(runtime)

        with pytest.raises(StateError):
            runtime.deliveries.transition("ord-1", DeliveryStatus.DELIVERED)
        assert order_service.status_of("ord-1") == "Reached_Station"

    def test_proof_for_another_order_is_rejected(self, runtime, order_service):
        _accept(runtime, order_service)
        _walk_to_last_mile(runtime)

        proof = runtime.verifier.capture_signature("ord-2", "media/ord-2/signature.png")
        with pytest.raises(StateError):
            runtime.deliveries.transition("ord-1", DeliveryStatus.DELIVERED, proof)
        assert not runtime.deliveries.get("ord-1").is_delivered

    def test_wrong_otp_keeps_order_open(self, runtime, order_service):
        _accept(runtime, order_service)
        _walk_to_last_mile(runtime)
        code = runtime.verifier.capture_otp("ord-1")
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(VerificationError):
            runtime.deliveries.deliver_with_otp("ord-1", wrong)

        assert runtime.deliveries.current_status("ord-1") == DeliveryStatus.REACHED_STATION
        assert runtime.earnings().count == 0

    def test_delivered_is_terminal(self, runtime, order_service):
        _accept(runtime, order_service)
        _walk_to_last_mile(runtime)
        code = runtime.verifier.capture_otp("ord-1")
        runtime.deliveries.deliver_with_otp("ord-1", code)

        with pytest.raises(StateError):
            runtime.deliveries.transition("ord-1", DeliveryStatus.PICKED_UP)


class TestQueries:
    def test_active_order_and_history(self, runtime, order_service, clock):
        _accept(runtime, order_service, "ord-1")
        _walk_to_last_mile(runtime, "ord-1")
        runtime.deliveries.deliver_with_otp("ord-1", runtime.verifier.capture_otp("ord-1"))

        clock.advance(60)
        _accept(runtime, order_service, "ord-2")

        assert runtime.deliveries.active_order().order_id == "ord-2"
        assert [d.order_id for d in runtime.deliveries.deliveries()] == ["ord-2", "ord-1"]

    def test_history_follows_runtime_clock(self, runtime, order_service, clock):
        _accept(runtime, order_service)
        accepted_at = clock.now

        clock.advance(120)
        delivery = runtime.deliveries.transition("ord-1", DeliveryStatus.PICKED_UP)

        assert [c.changed_at for c in delivery.history()] == [accepted_at, clock.now]
