"""Notification feed projector — turns offer, delivery and earnings events into feed entries."""

from protean.core.projector import on

from dispatch.delivery.events import DeliveryAssigned, DeliveryStatusChanged
from dispatch.delivery.order import DeliveryOrder, DeliveryStatus
from dispatch.domain import dispatch
from dispatch.earnings.events import EarningsBooked, PayoutSettled
from dispatch.earnings.ledger import EarningsLedger
from dispatch.feed.feed import FeedEntry, FeedType, append_entry, format_money
from dispatch.offer.events import (
    OfferAccepted,
    OfferDeclined,
    OfferExpired,
    OfferExtended,
    OfferWithdrawn,
)
from dispatch.offer.offer import Offer
from dispatch.proof.events import OtpIssued
from dispatch.proof.otp import OtpChallenge

_STATUS_LABELS = {
    DeliveryStatus.ACCEPTED.value: "accepted",
    DeliveryStatus.PICKED_UP.value: "picked up",
    DeliveryStatus.REACHED_STATION.value: "at the station",
    DeliveryStatus.OUT_FOR_DELIVERY.value: "out for delivery",
    DeliveryStatus.DELIVERED.value: "delivered",
}


@dispatch.projector(projector_for=FeedEntry, aggregates=[Offer, DeliveryOrder, EarningsLedger, OtpChallenge])
class NotificationFeedProjector:
    # -------------------------------------------------------------------
    # Offers
    # -------------------------------------------------------------------
    @on(OfferExtended)
    def on_offer_extended(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.INFO,
            f"New order {event.order_number} offered: {format_money(event.estimated_payout_cents)} estimated",
            at=event.offered_at,
        )

    @on(OfferAccepted)
    def on_offer_accepted(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.SUCCESS,
            f"Order {event.order_number} accepted successfully!",
            at=event.accepted_at,
        )

    @on(OfferDeclined)
    def on_offer_declined(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.INFO,
            f"Order {event.order_number} declined: {event.reason}",
            at=event.declined_at,
        )

    @on(OfferExpired)
    def on_offer_expired(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.INFO,
            f"Order {event.order_number} declined: {event.reason}",
            at=event.expired_at,
        )

    @on(OfferWithdrawn)
    def on_offer_withdrawn(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.WARNING,
            f"Order {event.order_number} withdrawn: {event.reason}",
            at=event.withdrawn_at,
        )

    # -------------------------------------------------------------------
    # Deliveries
    # -------------------------------------------------------------------
    @on(DeliveryAssigned)
    def on_delivery_assigned(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.INFO,
            f"Order {event.order_number} assigned: deliver to {event.destination}",
            at=event.accepted_at,
        )

    @on(DeliveryStatusChanged)
    def on_delivery_status_changed(self, event):
        if event.to_status == DeliveryStatus.OUT_FOR_DELIVERY.value:
            entry_type = FeedType.NAVIGATION
            message = f"Navigation started for order {event.order_number}: {event.destination}"
        else:
            entry_type = FeedType.INFO
            message = f"Order {event.order_number} is {_STATUS_LABELS[event.to_status]}"
        append_entry(str(event.agent_id), entry_type, message, at=event.changed_at)

    @on(OtpIssued)
    def on_otp_issued(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.INFO,
            f"OTP sent to the customer for order {event.order_id}",
            at=event.issued_at,
        )

    # -------------------------------------------------------------------
    # Earnings
    # -------------------------------------------------------------------
    @on(EarningsBooked)
    def on_earnings_booked(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.SUCCESS,
            f"Order {event.order_number} completed! Earned {format_money(event.commission_cents)}",
            at=event.recorded_at,
        )

    @on(PayoutSettled)
    def on_payout_settled(self, event):
        append_entry(
            str(event.agent_id),
            FeedType.SUCCESS,
            f"Payout of {format_money(event.amount_cents)} settled",
            at=event.settled_at,
        )
