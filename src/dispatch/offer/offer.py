"""Offer aggregate — a time-boxed chance for one agent to claim a pending order.

Outcome:
    PENDING → ACCEPTED | DECLINED | EXPIRED   (each terminal, reached at most once)

A withdrawal (the order was taken by someone else, or vanished from the
service) finalizes the offer as DECLINED with the withdrawal reason.
"""

from datetime import datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, ValueObject

from dispatch.domain import dispatch
from dispatch.offer.events import (
    OfferAccepted,
    OfferDeclined,
    OfferExpired,
    OfferExtended,
    OfferWithdrawn,
)
from dispatch.shared.target import (
    ContactInfo,
    DeliveryTarget,
    contact_from_payload,
    target_from_payload,
)
from dispatch.utils.clock import as_utc, parse_timestamp, utcnow

TIMEOUT_REASON = "Timeout - No response"
CLAIMED_ELSEWHERE_REASON = "Claimed by another agent"
NO_LONGER_AVAILABLE_REASON = "Order no longer available"


class OfferOutcome(Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    EXPIRED = "Expired"


@dispatch.entity(part_of="Offer")
class OfferLine:
    """One item of the offered order, for the agent's preview."""

    name = String(required=True, max_length=200, sanitize=False)
    quantity = Integer(required=True, min_value=1)
    unit_price_cents = Integer(default=0, min_value=0)


@dispatch.aggregate
class Offer:
    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(max_length=50, sanitize=False)
    total_cents = Integer(required=True, min_value=0)
    estimated_payout_cents = Integer(default=0, min_value=0)
    lines = HasMany(OfferLine)
    target = ValueObject(DeliveryTarget)
    contact = ValueObject(ContactInfo)
    order_created_at = DateTime()
    offered_at = DateTime(required=True)
    expires_at = DateTime(required=True)
    outcome = String(choices=OfferOutcome, default=OfferOutcome.PENDING.value)
    decline_reason = String(max_length=500, sanitize=False)
    resolved_at = DateTime()

    @classmethod
    def extend(
        cls,
        agent_id: str,
        order: dict,
        window_seconds: float,
        estimated_payout_cents: int,
        offered_at: datetime | None = None,
    ):
        """Open an offer for ``order`` that lapses ``window_seconds`` from now."""
        if window_seconds <= 0:
            raise ValidationError({"window_seconds": ["Offer window must be positive"]})

        offered_at = as_utc(offered_at) or utcnow()
        expires_at = offered_at + timedelta(seconds=window_seconds)
        target = target_from_payload(order.get("target"))
        offer = cls(
            agent_id=agent_id,
            order_id=order["order_id"],
            order_number=order.get("order_number") or order["order_id"],
            total_cents=int(order.get("total_cents") or 0),
            estimated_payout_cents=estimated_payout_cents,
            target=target,
            contact=contact_from_payload(order.get("contact")),
            order_created_at=parse_timestamp(order.get("created_at")),
            offered_at=offered_at,
            expires_at=expires_at,
            outcome=OfferOutcome.PENDING.value,
        )
        for item in order.get("items") or []:
            offer.add_lines(
                OfferLine(
                    name=item.get("name") or "Item",
                    quantity=int(item.get("quantity") or 1),
                    unit_price_cents=int(item.get("unit_price_cents") or 0),
                )
            )
        offer.raise_(
            OfferExtended(
                offer_id=str(offer.id),
                agent_id=agent_id,
                order_id=offer.order_id,
                order_number=offer.order_number,
                total_cents=offer.total_cents,
                estimated_payout_cents=estimated_payout_cents,
                destination=target.describe(),
                offered_at=offered_at,
                expires_at=expires_at,
            )
        )
        return offer

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_open(self) -> bool:
        return self.outcome == OfferOutcome.PENDING.value

    def has_expired(self, now: datetime | None = None) -> bool:
        return (as_utc(now) or utcnow()) >= as_utc(self.expires_at)

    def seconds_remaining(self, now: datetime | None = None) -> float:
        remaining = (as_utc(self.expires_at) - (as_utc(now) or utcnow())).total_seconds()
        return max(0.0, remaining)

    # -------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------
    def _assert_pending(self) -> None:
        if not self.is_open:
            raise ValidationError({"outcome": [f"Offer for order {self.order_id} is already {self.outcome}"]})

    def _resolve(self, outcome: OfferOutcome, reason: str | None, at: datetime | None) -> datetime:
        self._assert_pending()
        now = as_utc(at) or utcnow()
        self.outcome = outcome.value
        self.decline_reason = reason
        self.resolved_at = now
        return now

    def accept(self, at: datetime | None = None) -> None:
        now = self._resolve(OfferOutcome.ACCEPTED, None, at)
        self.raise_(
            OfferAccepted(
                offer_id=str(self.id),
                agent_id=self.agent_id,
                order_id=self.order_id,
                order_number=self.order_number,
                accepted_at=now,
            )
        )

    def decline(self, reason: str, at: datetime | None = None) -> None:
        now = self._resolve(OfferOutcome.DECLINED, reason, at)
        self.raise_(
            OfferDeclined(
                offer_id=str(self.id),
                agent_id=self.agent_id,
                order_id=self.order_id,
                order_number=self.order_number,
                reason=reason,
                declined_at=now,
            )
        )

    def expire(self, at: datetime | None = None) -> None:
        """Auto-decline once the deadline has passed; never earlier."""
        if not self.has_expired(at):
            raise ValidationError({"expires_at": [f"Offer for order {self.order_id} has not expired yet"]})
        now = self._resolve(OfferOutcome.EXPIRED, TIMEOUT_REASON, at)
        self.raise_(
            OfferExpired(
                offer_id=str(self.id),
                agent_id=self.agent_id,
                order_id=self.order_id,
                order_number=self.order_number,
                reason=TIMEOUT_REASON,
                expired_at=now,
            )
        )

    def withdraw(self, reason: str, at: datetime | None = None) -> None:
        now = self._resolve(OfferOutcome.DECLINED, reason, at)
        self.raise_(
            OfferWithdrawn(
                offer_id=str(self.id),
                agent_id=self.agent_id,
                order_id=self.order_id,
                order_number=self.order_number,
                reason=reason,
                withdrawn_at=now,
            )
        )
