"""Dispatch error taxonomy.

Two families:

* ``DispatchError`` subclasses describe the outcome of talking to the remote
  order service. ``ConflictError`` means the order was resolved elsewhere and
  the local offer must go; ``DispatchUnavailable`` is transient and the caller
  retries at its next scheduled interval; ``OrderServiceRejected`` is any other
  refusal from the service.
* ``StateError``, ``VerificationError`` and ``DuplicateRecordError`` are rule
  violations inside this context. They extend Protean's ``ValidationError`` so
  they carry the usual ``{field: [messages]}`` payload.
"""

from protean.exceptions import ValidationError


class DispatchError(Exception):
    """Base class for order-service outcomes."""


class ConflictError(DispatchError):
    """The order was claimed by another agent or is no longer offered."""

    def __init__(self, order_id: str, message: str | None = None):
        self.order_id = order_id
        super().__init__(message or f"Order {order_id} is no longer available")


class DispatchUnavailable(DispatchError):
    """Transient network or service failure; the operation may be retried."""

    def __init__(self, message: str = "Order service unavailable", order_id: str | None = None):
        self.order_id = order_id
        super().__init__(message)


class OrderServiceRejected(DispatchError):
    """The order service refused the request (4xx other than 409)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class StateError(ValidationError):
    """Illegal delivery status transition."""


class VerificationError(ValidationError):
    """Proof of delivery did not verify."""


class DuplicateRecordError(ValidationError):
    """Earnings were already booked for the order."""
