"""FastAPI routes for the dispatch context.

The agent's ``DispatchRuntime`` lives on ``app.state.runtime``. Domain and
order-service errors are translated to HTTP status codes in one place.
"""

import asyncio
from contextlib import contextmanager

from fastapi import APIRouter, HTTPException, Query, Request
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from dispatch.api.schemas import (
    AgentResponse,
    ContactResponse,
    DeclineOfferRequest,
    DeliveryResponse,
    EarningsRecordResponse,
    EarningsResponse,
    FeedEntryResponse,
    LineResponse,
    MediaProofRequest,
    OfferResponse,
    ProofResponse,
    SettlePayoutRequest,
    StatusChangeResponse,
    StatusResponse,
    TargetResponse,
    TransitionRequest,
    VerifyOtpRequest,
)
from dispatch.delivery.order import DeliveryOrder, DeliveryStatus
from dispatch.domain import dispatch
from dispatch.earnings.ledger import EarningsWindow
from dispatch.earnings.settlement import SettlePayout
from dispatch.errors import ConflictError, DispatchUnavailable, OrderServiceRejected
from dispatch.offer.offer import Offer
from dispatch.offer.pool import DEFAULT_DECLINE_REASON
from dispatch.runtime import DispatchRuntime
from dispatch.utils.clock import as_utc

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


def _runtime(request: Request) -> DispatchRuntime:
    return request.app.state.runtime


async def _off_loop(func, *args):
    """Run a call that reaches the order service on a worker thread."""

    def _call():
        with dispatch.domain_context():
            return func(*args)

    return await asyncio.to_thread(_call)


@contextmanager
def _domain_errors():
    try:
        yield
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except DispatchUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except OrderServiceRejected as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.messages) from exc


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------
def _lines(lines) -> list[LineResponse]:
    return [
        LineResponse(name=line.name, quantity=line.quantity, unit_price_cents=line.unit_price_cents or 0)
        for line in lines or []
    ]


def _target(target) -> TargetResponse:
    return TargetResponse(
        kind=target.kind,
        description=target.describe(),
        station_name=target.station_name,
        coach=target.coach,
        seat=target.seat,
        address=target.address,
    )


def _contact(contact) -> ContactResponse | None:
    if contact is None:
        return None
    return ContactResponse(name=contact.name, phone=contact.phone)


def _offer_response(offer: Offer, now) -> OfferResponse:
    return OfferResponse(
        offer_id=str(offer.id),
        order_id=offer.order_id,
        order_number=offer.order_number,
        total_cents=offer.total_cents,
        estimated_payout_cents=offer.estimated_payout_cents,
        items=_lines(offer.lines),
        target=_target(offer.target),
        contact=_contact(offer.contact),
        offered_at=as_utc(offer.offered_at),
        expires_at=as_utc(offer.expires_at),
        seconds_remaining=offer.seconds_remaining(now),
        outcome=offer.outcome,
    )


def _delivery_response(delivery: DeliveryOrder) -> DeliveryResponse:
    next_status = delivery.next_status()
    proof = delivery.proof
    return DeliveryResponse(
        order_id=delivery.order_id,
        order_number=delivery.order_number,
        agent_id=delivery.agent_id,
        status=delivery.status,
        next_status=next_status.value if next_status else None,
        total_cents=delivery.total_cents,
        items=_lines(delivery.lines),
        target=_target(delivery.target),
        contact=_contact(delivery.contact),
        history=[
            StatusChangeResponse(status=c.status, sequence=c.sequence, changed_at=as_utc(c.changed_at))
            for c in delivery.history()
        ],
        proof=ProofResponse(kind=proof.kind, captured_at=as_utc(proof.captured_at)) if proof else None,
        accepted_at=as_utc(delivery.accepted_at),
        delivered_at=as_utc(delivery.delivered_at),
    )


def _agent_response(runtime: DispatchRuntime) -> AgentResponse:
    session = runtime.session
    return AgentResponse(
        agent_id=session.agent_id,
        name=session.name,
        vehicle_type=session.vehicle_type,
        online=session.online,
        shift_status=session.shift_status,
    )


def _earnings_response(runtime: DispatchRuntime, window: EarningsWindow) -> EarningsResponse:
    ledger = runtime.ledger()
    summary = ledger.aggregates(window, now=runtime.now())
    return EarningsResponse(
        window=window.value,
        total_cents=summary.total_cents,
        count=summary.count,
        average_cents=summary.average_cents,
        pending_payout_cents=ledger.pending_payout_cents or 0,
    )


# ---------------------------------------------------------------------------
# Agent shift
# ---------------------------------------------------------------------------
@router.get("/agent", response_model=AgentResponse)
async def get_agent(request: Request) -> AgentResponse:
    return _agent_response(_runtime(request))


@router.post("/agent/online", response_model=AgentResponse)
async def go_online(request: Request) -> AgentResponse:
    """Start taking work and pull the current open orders."""
    runtime = _runtime(request)
    runtime.pool.go_online()
    with _domain_errors():
        await _off_loop(runtime.pool.refresh)
    return _agent_response(runtime)


@router.post("/agent/offline", response_model=AgentResponse)
async def go_offline(request: Request) -> AgentResponse:
    runtime = _runtime(request)
    await _off_loop(runtime.pool.go_offline)
    return _agent_response(runtime)


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------
@router.get("/offers", response_model=list[OfferResponse])
async def list_offers(request: Request) -> list[OfferResponse]:
    runtime = _runtime(request)
    now = runtime.now()
    return [_offer_response(offer, now) for offer in runtime.pool.list_open_offers()]


@router.post("/offers/refresh", response_model=list[OfferResponse])
async def refresh_offers(request: Request) -> list[OfferResponse]:
    runtime = _runtime(request)
    with _domain_errors():
        offers = await _off_loop(runtime.pool.refresh)
    now = runtime.now()
    return [_offer_response(offer, now) for offer in offers]


@router.post("/offers/{order_id}/accept", response_model=DeliveryResponse)
async def accept_offer(order_id: str, request: Request) -> DeliveryResponse:
    with _domain_errors():
        delivery = await _off_loop(_runtime(request).pool.accept, order_id)
    return _delivery_response(delivery)


@router.post("/offers/{order_id}/decline", response_model=StatusResponse)
async def decline_offer(order_id: str, request: Request, body: DeclineOfferRequest | None = None) -> StatusResponse:
    reason = (body.reason if body else None) or DEFAULT_DECLINE_REASON
    offer = await _off_loop(_runtime(request).pool.decline, order_id, reason)
    if offer is None:
        raise HTTPException(status_code=404, detail=f"No open offer for order {order_id}")
    return StatusResponse(status="declined")


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------
@router.get("/deliveries", response_model=list[DeliveryResponse])
async def list_deliveries(request: Request) -> list[DeliveryResponse]:
    return [_delivery_response(d) for d in _runtime(request).deliveries.deliveries()]


@router.get("/deliveries/active", response_model=DeliveryResponse)
async def active_delivery(request: Request) -> DeliveryResponse:
    delivery = _runtime(request).deliveries.active_order()
    if delivery is None:
        raise HTTPException(status_code=404, detail="No active delivery")
    return _delivery_response(delivery)


@router.get("/deliveries/{order_id}", response_model=DeliveryResponse)
async def get_delivery(order_id: str, request: Request) -> DeliveryResponse:
    with _domain_errors():
        delivery = _runtime(request).deliveries.get(order_id)
    return _delivery_response(delivery)


@router.put("/deliveries/{order_id}/status", response_model=DeliveryResponse)
async def transition_delivery(order_id: str, body: TransitionRequest, request: Request) -> DeliveryResponse:
    """Advance a delivery one step. Delivered needs a proof endpoint instead."""
    with _domain_errors():
        delivery = await _off_loop(_runtime(request).deliveries.transition, order_id, body.status)
    return _delivery_response(delivery)


@router.post("/deliveries/{order_id}/otp", response_model=StatusResponse)
async def send_otp(order_id: str, request: Request) -> StatusResponse:
    runtime = _runtime(request)
    with _domain_errors():
        runtime.deliveries.get(order_id)
        await _off_loop(runtime.verifier.capture_otp, order_id)
    return StatusResponse(status="otp_sent")


@router.post("/deliveries/{order_id}/otp/verify", response_model=DeliveryResponse)
async def verify_otp(order_id: str, body: VerifyOtpRequest, request: Request) -> DeliveryResponse:
    with _domain_errors():
        delivery = await _off_loop(_runtime(request).deliveries.deliver_with_otp, order_id, body.code)
    return _delivery_response(delivery)


@router.post("/deliveries/{order_id}/photo", response_model=DeliveryResponse)
async def deliver_with_photo(order_id: str, body: MediaProofRequest, request: Request) -> DeliveryResponse:
    runtime = _runtime(request)
    with _domain_errors():
        proof = runtime.verifier.capture_photo(order_id, body.media_ref)
        delivery = await _off_loop(runtime.deliveries.transition, order_id, DeliveryStatus.DELIVERED, proof)
    return _delivery_response(delivery)


@router.post("/deliveries/{order_id}/signature", response_model=DeliveryResponse)
async def deliver_with_signature(order_id: str, body: MediaProofRequest, request: Request) -> DeliveryResponse:
    runtime = _runtime(request)
    with _domain_errors():
        proof = runtime.verifier.capture_signature(order_id, body.media_ref)
        delivery = await _off_loop(runtime.deliveries.transition, order_id, DeliveryStatus.DELIVERED, proof)
    return _delivery_response(delivery)


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------
@router.get("/feed", response_model=list[FeedEntryResponse])
async def feed(request: Request, limit: int = Query(default=50, ge=1, le=200)) -> list[FeedEntryResponse]:
    runtime = _runtime(request)
    return [
        FeedEntryResponse(id=entry.entry_id, type=entry.entry_type, message=entry.message, time=as_utc(entry.posted_at))
        for entry in runtime.feed.entries(runtime.session.agent_id, limit=limit)
    ]


# ---------------------------------------------------------------------------
# Earnings
# ---------------------------------------------------------------------------
@router.get("/earnings", response_model=EarningsResponse)
async def earnings(request: Request, window: EarningsWindow = EarningsWindow.TODAY) -> EarningsResponse:
    return _earnings_response(_runtime(request), window)


@router.get("/earnings/history", response_model=list[EarningsRecordResponse])
async def earnings_history(request: Request) -> list[EarningsRecordResponse]:
    return [
        EarningsRecordResponse(
            order_id=r.order_id,
            order_number=r.order_number,
            gross_cents=r.gross_cents,
            commission_cents=r.commission_cents,
            recorded_at=as_utc(r.recorded_at),
        )
        for r in _runtime(request).ledger().history()
    ]


@router.post("/earnings/settlements", response_model=EarningsResponse)
async def settle_payout(body: SettlePayoutRequest, request: Request) -> EarningsResponse:
    """Record an external payout against the pending balance."""
    runtime = _runtime(request)
    with _domain_errors():
        current_domain.process(
            SettlePayout(
                agent_id=runtime.session.agent_id,
                amount_cents=body.amount_cents,
                reference=body.reference,
            ),
            asynchronous=False,
        )
    return _earnings_response(runtime, EarningsWindow.ALL)
