"""Order service adapters — pluggable access to the remote order store."""

from dispatch.config import DispatchSettings
from dispatch.orderservice.port import OrderServicePort


def build_order_service(settings: DispatchSettings) -> OrderServicePort:
    """Return the adapter selected by ``settings.order_service_adapter``.

    Uses FakeOrderService by default. Each agent runtime builds its own
    adapter; nothing is cached at module level.
    """
    adapter = settings.order_service_adapter
    if adapter == "fake":
        from dispatch.orderservice.fake_adapter import FakeOrderService

        return FakeOrderService()
    if adapter == "http":
        from dispatch.orderservice.http_adapter import HttpOrderService

        return HttpOrderService(
            base_url=settings.order_service_url,
            token=settings.order_service_token,
            timeout=settings.order_service_timeout,
        )
    raise ValueError(f"Unknown order service adapter: {adapter}")
