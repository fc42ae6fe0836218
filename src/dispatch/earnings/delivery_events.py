"""Books earnings when a delivery completes.

A replayed ``OrderDelivered`` must not double-count; the duplicate is
logged and dropped.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dispatch.delivery.events import OrderDelivered
from dispatch.domain import dispatch
from dispatch.earnings.ledger import EarningsLedger
from dispatch.errors import DuplicateRecordError

logger = structlog.get_logger(__name__)


@dispatch.event_handler(part_of=EarningsLedger, stream_category="dispatch::delivery_order")
class DeliveryEarningsHandler:
    @handle(OrderDelivered)
    def on_order_delivered(self, event: OrderDelivered) -> None:
        repo = current_domain.repository_for(EarningsLedger)
        try:
            ledger = repo.get(str(event.agent_id))
        except ObjectNotFoundError:
            ledger = EarningsLedger.open(str(event.agent_id))

        try:
            record = ledger.record(
                order_id=str(event.order_id),
                total_cents=event.total_cents,
                commission_rate=event.commission_rate,
                base_fee_cents=event.base_fee_cents,
                at=event.delivered_at,
                order_number=event.order_number,
            )
        except DuplicateRecordError:
            logger.warning(
                "Earnings already recorded, dropping replayed delivery",
                order_id=str(event.order_id),
                agent_id=str(event.agent_id),
            )
            return

        repo.add(ledger)
        logger.info(
            "Earnings booked",
            order_id=str(event.order_id),
            agent_id=str(event.agent_id),
            commission_cents=record.commission_cents,
        )
