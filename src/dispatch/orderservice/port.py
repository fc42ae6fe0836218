"""Order service port — abstract interface to the remote order store.

The dispatch components program against this port; adapters are chosen by
configuration. Orders cross the port as plain dicts in one canonical shape:

    {
        "order_id": str,
        "order_number": str,
        "total_cents": int,
        "items": [{"name": str, "quantity": int, "unit_price_cents": int}],
        "target": {"kind": "Station" | "Address", "station_name": str,
                   "coach": str, "seat": str, "address": str},
        "contact": {"name": str, "phone": str},
        "created_at": ISO-8601 UTC string,
    }

Adapters raise ``ConflictError`` when an order was already resolved,
``DispatchUnavailable`` on transport or server failures, and
``OrderServiceRejected`` for any other refusal.
"""

from abc import ABC, abstractmethod


class OrderServicePort(ABC):
    """Abstract interface for order service adapters."""

    @abstractmethod
    def fetch_open_offers(self, agent_id: str) -> list[dict]:
        """List orders currently available to the agent."""
        ...

    @abstractmethod
    def claim_order(self, order_id: str, agent_id: str) -> dict:
        """Claim an order for the agent (remote compare-and-swap).

        Returns:
            The claimed order, or ``{}`` if the service does not echo it.
            Raises ``ConflictError`` if someone else won.
        """
        ...

    @abstractmethod
    def decline_order(self, order_id: str, agent_id: str, reason: str) -> None:
        """Tell the service the agent passed on an order."""
        ...

    @abstractmethod
    def update_order_status(self, order_id: str, status: str, proof=None) -> dict:
        """Push a delivery status change (with proof for ``Delivered``).

        Returns:
            dict with at least keys: order_id, status
        """
        ...

    @abstractmethod
    def generate_otp(self, order_id: str) -> str:
        """Generate a 6-digit code and deliver it to the customer."""
        ...

    @abstractmethod
    def verify_otp(self, order_id: str, code: str) -> None:
        """Confirm a code with the service; raises ``OrderServiceRejected`` on mismatch."""
        ...

    def close(self) -> None:
        """Release connections held by the adapter."""
