"""Runtime settings for a delivery agent's dispatch process.

Protean infrastructure (databases, brokers, event store) is configured in
``domain.toml``. Everything the dispatch components themselves need is read
from the environment once and handed around as an immutable
``DispatchSettings``.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

DEFAULT_OFFER_WINDOW_SECONDS = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_COMMISSION_RATE = Decimal("0.10")
DEFAULT_BASE_FEE_CENTS = 2000


@dataclass(frozen=True)
class DispatchSettings:
    agent_id: str = "agent-local"
    agent_name: str = "Delivery Agent"
    vehicle_type: str = "Bike"
    offer_window_seconds: float = DEFAULT_OFFER_WINDOW_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    commission_rate: Decimal = DEFAULT_COMMISSION_RATE
    base_fee_cents: int = DEFAULT_BASE_FEE_CENTS
    order_service_adapter: str = "fake"
    order_service_url: str | None = None
    order_service_token: str | None = None
    order_service_timeout: float = 10.0

    def __post_init__(self):
        if not self.agent_id:
            raise ValueError("agent_id is required")
        if self.offer_window_seconds <= 0:
            raise ValueError("offer_window_seconds must be positive")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if not Decimal("0") <= Decimal(self.commission_rate) <= Decimal("1"):
            raise ValueError("commission_rate must be between 0 and 1")
        if self.base_fee_cents < 0:
            raise ValueError("base_fee_cents cannot be negative")

    @classmethod
    def from_env(cls, environ=None) -> "DispatchSettings":
        env = os.environ if environ is None else environ

        try:
            rate = Decimal(env.get("DISPATCH_COMMISSION_RATE", str(DEFAULT_COMMISSION_RATE)))
        except InvalidOperation as exc:
            raise ValueError("DISPATCH_COMMISSION_RATE must be a decimal number") from exc

        return cls(
            agent_id=env.get("DISPATCH_AGENT_ID", "agent-local"),
            agent_name=env.get("DISPATCH_AGENT_NAME", "Delivery Agent"),
            vehicle_type=env.get("DISPATCH_VEHICLE_TYPE", "Bike"),
            offer_window_seconds=float(env.get("DISPATCH_OFFER_WINDOW_SECONDS", DEFAULT_OFFER_WINDOW_SECONDS)),
            poll_interval_seconds=float(env.get("DISPATCH_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)),
            commission_rate=rate,
            base_fee_cents=int(env.get("DISPATCH_BASE_FEE_CENTS", DEFAULT_BASE_FEE_CENTS)),
            order_service_adapter=env.get("ORDER_SERVICE_ADAPTER", "fake"),
            order_service_url=env.get("ORDER_SERVICE_URL") or None,
            order_service_token=env.get("ORDER_SERVICE_TOKEN") or None,
            order_service_timeout=float(env.get("ORDER_SERVICE_TIMEOUT", 10.0)),
        )
