"""Pydantic API schemas for the dispatch context.

Money is always integer minor units and timestamps are UTC.
"""

from datetime import datetime

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class DeclineOfferRequest(BaseModel):
    reason: str | None = None


class TransitionRequest(BaseModel):
    status: str


class VerifyOtpRequest(BaseModel):
    code: str


class MediaProofRequest(BaseModel):
    media_ref: str


class SettlePayoutRequest(BaseModel):
    amount_cents: int
    reference: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str


class AgentResponse(BaseModel):
    agent_id: str
    name: str
    vehicle_type: str
    online: bool
    shift_status: str


class LineResponse(BaseModel):
    name: str
    quantity: int
    unit_price_cents: int


class TargetResponse(BaseModel):
    kind: str
    description: str
    station_name: str | None = None
    coach: str | None = None
    seat: str | None = None
    address: str | None = None


class ContactResponse(BaseModel):
    name: str | None = None
    phone: str | None = None


class OfferResponse(BaseModel):
    offer_id: str
    order_id: str
    order_number: str
    total_cents: int
    estimated_payout_cents: int
    items: list[LineResponse]
    target: TargetResponse
    contact: ContactResponse | None = None
    offered_at: datetime
    expires_at: datetime
    seconds_remaining: float
    outcome: str


class StatusChangeResponse(BaseModel):
    status: str
    sequence: int
    changed_at: datetime


class ProofResponse(BaseModel):
    kind: str
    captured_at: datetime


class DeliveryResponse(BaseModel):
    order_id: str
    order_number: str
    agent_id: str
    status: str
    next_status: str | None = None
    total_cents: int
    items: list[LineResponse]
    target: TargetResponse
    contact: ContactResponse | None = None
    history: list[StatusChangeResponse]
    proof: ProofResponse | None = None
    accepted_at: datetime | None = None
    delivered_at: datetime | None = None


class FeedEntryResponse(BaseModel):
    id: str
    type: str
    message: str
    time: datetime


class EarningsResponse(BaseModel):
    window: str
    total_cents: int
    count: int
    average_cents: int
    pending_payout_cents: int


class EarningsRecordResponse(BaseModel):
    order_id: str
    order_number: str | None = None
    gross_cents: int
    commission_cents: int
    recorded_at: datetime
