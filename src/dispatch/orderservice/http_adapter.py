"""HTTP order service adapter — talks to the delivery REST API with httpx.

Remote orders use the storefront's own JSON shape (``_id``, ``totals.finalCents``,
``deliveryInfo`` ...) and upper-case status codes; both are translated to the
canonical port shape here so nothing else in the context sees them.
"""

import httpx
import structlog

from dispatch.errors import ConflictError, DispatchUnavailable, OrderServiceRejected
from dispatch.orderservice.port import OrderServicePort

logger = structlog.get_logger(__name__)

# Canonical status -> remote status code
_REMOTE_STATUS = {
    "Accepted": "ACCEPTED",
    "Picked_Up": "PICKED_UP",
    "Reached_Station": "REACHED_STATION",
    "Out_For_Delivery": "OUT_FOR_DELIVERY",
    "Delivered": "DELIVERED",
}

# Remote status codes and legacy display labels -> canonical status
_CANONICAL_STATUS = {
    **{code: status for status, code in _REMOTE_STATUS.items()},
    "Picked Up": "Picked_Up",
    "Reached Station": "Reached_Station",
    "Out for Delivery": "Out_For_Delivery",
}


def canonical_status(remote: str | None) -> str | None:
    if remote is None:
        return None
    return _CANONICAL_STATUS.get(remote, remote)


def to_order_payload(raw: dict) -> dict:
    """Translate a remote order document into the canonical port shape."""
    delivery_info = raw.get("deliveryInfo") or {}
    user = raw.get("user") or {}
    totals = raw.get("totals") or {}

    if delivery_info.get("stationName"):
        target = {
            "kind": "Station",
            "station_name": delivery_info.get("stationName"),
            "coach": delivery_info.get("coach"),
            "seat": delivery_info.get("seat"),
        }
    else:
        target = {"kind": "Address", "address": delivery_info.get("address")}

    items = [
        {
            "name": item.get("name") or (item.get("menuItem") or {}).get("name") or "Item",
            "quantity": int(item.get("quantity") or item.get("qty") or 1),
            "unit_price_cents": int(item.get("priceCents") or 0),
        }
        for item in raw.get("items") or []
    ]

    return {
        "order_id": str(raw.get("_id") or raw.get("id")),
        "order_number": str(raw.get("orderNumber") or raw.get("_id") or ""),
        "total_cents": int(totals.get("finalCents") or 0),
        "items": items,
        "target": target,
        "contact": {"name": user.get("name"), "phone": user.get("phone") or delivery_info.get("phone")},
        "created_at": raw.get("createdAt"),
        "status": canonical_status(raw.get("status")),
    }


class HttpOrderService(OrderServicePort):
    def __init__(
        self,
        base_url: str | None,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("Order service base URL is not configured.")
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=5.0),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def fetch_open_offers(self, agent_id: str) -> list[dict]:
        data = self._request("GET", "/delivery/available-orders", params={"agentId": agent_id})
        if not isinstance(data, list):
            return []
        return [to_order_payload(raw) for raw in data]

    def claim_order(self, order_id: str, agent_id: str) -> dict:
        data = self._request(
            "POST",
            "/delivery/orders/accept",
            json={"orderId": order_id, "agentId": agent_id},
            order_id=order_id,
        )
        raw = (data or {}).get("order")
        # An empty dict tells the pool to keep the offer's own snapshot
        return to_order_payload(raw) if raw else {}

    def decline_order(self, order_id: str, agent_id: str, reason: str) -> None:
        self._request(
            "POST",
            "/delivery/orders/decline",
            json={"orderId": order_id, "agentId": agent_id, "reason": reason},
            order_id=order_id,
        )

    def update_order_status(self, order_id: str, status: str, proof=None) -> dict:
        body = {"status": _REMOTE_STATUS.get(status, status)}
        if proof is not None:
            body["proof"] = {
                "type": proof.kind.upper(),
                "value": proof.value,
                "timestamp": proof.captured_at.isoformat(),
            }
        data = self._request("PUT", f"/delivery/orders/{order_id}/status", json=body, order_id=order_id) or {}
        order = data.get("order") or {}
        return {"order_id": order_id, "status": canonical_status(order.get("status")) or status}

    def generate_otp(self, order_id: str) -> str:
        data = self._request("GET", f"/delivery/otp/{order_id}/generate", order_id=order_id) or {}
        return str(data.get("otp", ""))

    def verify_otp(self, order_id: str, code: str) -> None:
        self._request("POST", "/delivery/otp/verify", json={"orderId": order_id, "otp": code}, order_id=order_id)

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _request(self, method: str, path: str, order_id: str | None = None, **kwargs):
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Order service request failed", method=method, path=path, error=str(exc))
            raise DispatchUnavailable(f"Order service unreachable: {exc}", order_id=order_id) from exc

        if response.status_code == 409:
            raise ConflictError(order_id or "", _error_message(response, "Order already taken"))
        if response.status_code >= 500:
            raise DispatchUnavailable(_error_message(response, "Order service error"), order_id=order_id)
        if response.status_code >= 400:
            raise OrderServiceRejected(_error_message(response, "Request rejected"), status_code=response.status_code)

        if not response.content:
            return None
        return response.json()


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or default
    return default
