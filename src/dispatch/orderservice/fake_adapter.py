"""Fake order service — in-memory arbiter for testing and development.

Holds a shared pool of orders and arbitrates claims under a lock, so several
agent sessions pointed at one instance race exactly as they would against
the real service. Failure behaviour is configurable.
"""

import copy
import secrets
import threading
from datetime import UTC, datetime

from dispatch.errors import ConflictError, DispatchUnavailable, OrderServiceRejected
from dispatch.orderservice.port import OrderServicePort


def build_order_payload(
    order_id: str,
    total_cents: int = 10000,
    order_number: str | None = None,
    station_name: str | None = "Colombo Fort",
    coach: str | None = "C2",
    seat: str | None = "14",
    address: str | None = None,
    items: list[dict] | None = None,
    customer_name: str = "Customer",
    customer_phone: str = "+94 77 000 0000",
    created_at: datetime | None = None,
) -> dict:
    """Build an order in the canonical port shape.

    Passing ``address`` makes it an address delivery; otherwise the order is
    delivered to a passenger at ``station_name``.
    """
    if address:
        target = {"kind": "Address", "address": address}
    else:
        target = {"kind": "Station", "station_name": station_name, "coach": coach, "seat": seat}
    return {
        "order_id": order_id,
        "order_number": order_number or order_id.upper(),
        "total_cents": total_cents,
        "items": items if items is not None else [{"name": "Rice & Curry", "quantity": 1, "unit_price_cents": total_cents}],
        "target": target,
        "contact": {"name": customer_name, "phone": customer_phone},
        "created_at": (created_at or datetime.now(UTC)).isoformat(),
    }


class FakeOrderService(OrderServicePort):
    """Fake order service that always succeeds by default."""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Order service unavailable"
        self._lock = threading.Lock()
        self._orders: dict[str, dict] = {}
        self._claimed_by: dict[str, str] = {}
        self._declined_by: dict[str, set[str]] = {}
        self._statuses: dict[str, str] = {}
        self._proofs: dict[str, dict] = {}
        self._otps: dict[str, str] = {}
        self.declines: list[dict] = []

    def configure(self, should_succeed: bool = True, failure_reason: str = "Order service unavailable"):
        """Configure the fake service behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def publish(self, order: dict) -> None:
        """Make an order available to every agent."""
        with self._lock:
            self._orders[order["order_id"]] = copy.deepcopy(order)
            self._claimed_by.pop(order["order_id"], None)
            self._declined_by.pop(order["order_id"], None)

    def claimed_by(self, order_id: str) -> str | None:
        return self._claimed_by.get(order_id)

    def status_of(self, order_id: str) -> str | None:
        return self._statuses.get(order_id)

    def proof_of(self, order_id: str) -> dict | None:
        return self._proofs.get(order_id)

    def last_otp(self, order_id: str) -> str | None:
        return self._otps.get(order_id)

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def fetch_open_offers(self, agent_id: str) -> list[dict]:
        self._check_available()
        with self._lock:
            open_orders = [
                copy.deepcopy(order)
                for order_id, order in self._orders.items()
                if order_id not in self._claimed_by and agent_id not in self._declined_by.get(order_id, set())
            ]
        return sorted(open_orders, key=lambda o: o["created_at"])

    def claim_order(self, order_id: str, agent_id: str) -> dict:
        self._check_available(order_id)
        with self._lock:
            if order_id not in self._orders:
                raise ConflictError(order_id, f"Order {order_id} is no longer offered")
            if order_id in self._claimed_by:
                raise ConflictError(order_id, f"Order {order_id} was already claimed")
            self._claimed_by[order_id] = agent_id
            self._statuses[order_id] = "Accepted"
            return copy.deepcopy(self._orders[order_id])

    def decline_order(self, order_id: str, agent_id: str, reason: str) -> None:
        self._check_available(order_id)
        with self._lock:
            # Declining only hides the order from this agent; it stays open for others
            self._declined_by.setdefault(order_id, set()).add(agent_id)
            self.declines.append({"order_id": order_id, "agent_id": agent_id, "reason": reason})

    def update_order_status(self, order_id: str, status: str, proof=None) -> dict:
        self._check_available(order_id)
        with self._lock:
            if order_id not in self._claimed_by:
                raise OrderServiceRejected(f"Order {order_id} is not assigned", status_code=404)
            self._statuses[order_id] = status
            if proof is not None:
                self._proofs[order_id] = proof.to_dict()
            return {"order_id": order_id, "status": status}

    def generate_otp(self, order_id: str) -> str:
        self._check_available(order_id)
        code = f"{secrets.randbelow(1_000_000):06d}"
        with self._lock:
            self._otps[order_id] = code
        return code

    def verify_otp(self, order_id: str, code: str) -> None:
        self._check_available(order_id)
        if self._otps.get(order_id) != code:
            raise OrderServiceRejected("Invalid OTP", status_code=400)

    def _check_available(self, order_id: str | None = None) -> None:
        if not self.should_succeed:
            raise DispatchUnavailable(self.failure_reason, order_id=order_id)
