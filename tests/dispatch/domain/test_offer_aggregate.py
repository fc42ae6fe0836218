"""Tests for the Offer aggregate — extension, deadlines and single resolution."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from dispatch.offer.events import OfferAccepted, OfferDeclined, OfferExpired, OfferExtended, OfferWithdrawn
from dispatch.offer.offer import (
    CLAIMED_ELSEWHERE_REASON,
    TIMEOUT_REASON,
    Offer,
    OfferOutcome,
)
from dispatch.orderservice.fake_adapter import build_order_payload

OFFERED_AT = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _make_offer(window=30, total_cents=30000):
    return Offer.extend(
        agent_id="agent-a",
        order=build_order_payload("ord-x", total_cents=total_cents),
        window_seconds=window,
        estimated_payout_cents=5000,
        offered_at=OFFERED_AT,
    )


def _at(seconds):
    return OFFERED_AT + timedelta(seconds=seconds)


class TestExtension:
    def test_new_offer_is_pending_with_absolute_deadline(self):
        offer = _make_offer()
        assert offer.outcome == OfferOutcome.PENDING.value
        assert offer.is_open
        assert offer.expires_at == _at(30)

    def test_snapshot_of_order_is_carried(self):
        offer = _make_offer()
        assert offer.order_id == "ord-x"
        assert offer.order_number == "ORD-X"
        assert offer.total_cents == 30000
        assert offer.estimated_payout_cents == 5000
        assert offer.target.describe() == "Colombo Fort Station, Coach C2, Seat 14"
        assert len(offer.lines) == 1

    def test_raises_offer_extended(self):
        offer = _make_offer()
        extended = [e for e in offer._events if isinstance(e, OfferExtended)]
        assert len(extended) == 1
        assert extended[0].expires_at == _at(30)

    def test_window_must_be_positive(self):
        with pytest.raises(ValidationError):
            _make_offer(window=0)


class TestDeadline:
    def test_not_expired_before_window(self):
        offer = _make_offer()
        assert not offer.has_expired(_at(29.999))
        assert offer.seconds_remaining(_at(10)) == 20

    def test_expired_at_window(self):
        offer = _make_offer()
        assert offer.has_expired(_at(30))
        assert offer.seconds_remaining(_at(45)) == 0

    def test_expire_before_deadline_is_rejected(self):
        offer = _make_offer()
        with pytest.raises(ValidationError):
            offer.expire(at=_at(29))
        assert offer.is_open

    def test_expire_at_deadline(self):
        offer = _make_offer()
        offer.expire(at=_at(30))
        assert offer.outcome == OfferOutcome.EXPIRED.value
        assert offer.decline_reason == TIMEOUT_REASON
        assert offer.resolved_at == _at(30)
        assert any(isinstance(e, OfferExpired) for e in offer._events)


class TestResolution:
    def test_accept(self):
        offer = _make_offer()
        offer.accept(at=_at(5))
        assert offer.outcome == OfferOutcome.ACCEPTED.value
        assert any(isinstance(e, OfferAccepted) for e in offer._events)

    def test_decline_records_reason(self):
        offer = _make_offer()
        offer.decline("Too far", at=_at(5))
        assert offer.outcome == OfferOutcome.DECLINED.value
        assert offer.decline_reason == "Too far"
        assert any(isinstance(e, OfferDeclined) for e in offer._events)

    def test_withdraw_finalizes_as_declined(self):
        offer = _make_offer()
        offer.withdraw(CLAIMED_ELSEWHERE_REASON, at=_at(5))
        assert offer.outcome == OfferOutcome.DECLINED.value
        assert offer.decline_reason == CLAIMED_ELSEWHERE_REASON
        assert any(isinstance(e, OfferWithdrawn) for e in offer._events)

    @pytest.mark.parametrize(
        "resolve",
        [
            lambda o: o.accept(at=_at(5)),
            lambda o: o.decline("Busy", at=_at(5)),
            lambda o: o.expire(at=_at(30)),
            lambda o: o.withdraw("Order no longer available", at=_at(5)),
        ],
    )
    def test_outcome_is_final(self, resolve):
        offer = _make_offer()
        resolve(offer)
        outcome = offer.outcome

        with pytest.raises(ValidationError):
            offer.accept(at=_at(31))
        with pytest.raises(ValidationError):
            offer.decline("Again", at=_at(31))
        with pytest.raises(ValidationError):
            offer.expire(at=_at(31))
        assert offer.outcome == outcome
