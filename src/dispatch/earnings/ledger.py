"""EarningsLedger aggregate — one per agent, append-only commission records.

Commission for a delivered order is ``round_half_up(total * rate) + base_fee``
in integer minor units. The pending payout grows with every record and only
shrinks through an explicit settlement.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.earnings.events import EarningsBooked, PayoutSettled
from dispatch.errors import DuplicateRecordError
from dispatch.utils.clock import as_utc, utcnow


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_commission(total_cents: int, commission_rate, base_fee_cents: int) -> int:
    """Agent commission for one order, in minor units.

    The rate goes through ``str`` so a float like 0.1 is read as written.
    """
    rate = commission_rate if isinstance(commission_rate, Decimal) else Decimal(str(commission_rate))
    return round_half_up(Decimal(total_cents) * rate) + base_fee_cents


# ---------------------------------------------------------------------------
# Aggregation windows
# ---------------------------------------------------------------------------
class EarningsWindow(Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"

    def starts_at(self, now: datetime) -> datetime | None:
        """Start of the window containing ``now`` on the UTC calendar; weeks start Monday."""
        midnight = as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        if self is EarningsWindow.TODAY:
            return midnight
        if self is EarningsWindow.WEEK:
            return midnight - timedelta(days=midnight.weekday())
        if self is EarningsWindow.MONTH:
            return midnight.replace(day=1)
        return None


@dataclass(frozen=True)
class EarningsSummary:
    window: EarningsWindow
    total_cents: int
    count: int
    average_cents: int


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@dispatch.entity(part_of="EarningsLedger")
class EarningsRecord:
    order_id = Identifier(required=True)
    order_number = String(max_length=50, sanitize=False)
    gross_cents = Integer(required=True, min_value=0)
    commission_cents = Integer(required=True, min_value=0)
    recorded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@dispatch.aggregate
class EarningsLedger:
    agent_id = Identifier(identifier=True)
    pending_payout_cents = Integer(default=0, min_value=0)
    settled_cents = Integer(default=0, min_value=0)
    records = HasMany(EarningsRecord)

    @classmethod
    def open(cls, agent_id: str):
        return cls(agent_id=agent_id, pending_payout_cents=0, settled_cents=0)

    def has_record(self, order_id: str) -> bool:
        return any(str(r.order_id) == str(order_id) for r in self.records or [])

    def record(
        self,
        order_id: str,
        total_cents: int,
        commission_rate,
        base_fee_cents: int,
        at: datetime | None = None,
        order_number: str | None = None,
    ) -> EarningsRecord:
        """Book the commission for one delivered order, exactly once."""
        if self.has_record(order_id):
            raise DuplicateRecordError({"order_id": [f"Earnings for order {order_id} are already recorded"]})

        now = as_utc(at) or utcnow()
        commission = compute_commission(total_cents, commission_rate, base_fee_cents)
        record = EarningsRecord(
            order_id=order_id,
            order_number=order_number or order_id,
            gross_cents=total_cents,
            commission_cents=commission,
            recorded_at=now,
        )
        self.add_records(record)
        self.pending_payout_cents = (self.pending_payout_cents or 0) + commission
        self.raise_(
            EarningsBooked(
                agent_id=self.agent_id,
                order_id=order_id,
                order_number=record.order_number,
                gross_cents=total_cents,
                commission_cents=commission,
                pending_payout_cents=self.pending_payout_cents,
                recorded_at=now,
            )
        )
        return record

    def settle_payout(self, amount_cents: int, reference: str | None = None) -> None:
        if amount_cents <= 0:
            raise ValidationError({"amount_cents": ["Settlement amount must be positive"]})
        if amount_cents > (self.pending_payout_cents or 0):
            raise ValidationError(
                {"amount_cents": [f"Cannot settle {amount_cents}; only {self.pending_payout_cents} is pending"]}
            )

        now = utcnow()
        self.pending_payout_cents -= amount_cents
        self.settled_cents = (self.settled_cents or 0) + amount_cents
        self.raise_(
            PayoutSettled(
                agent_id=self.agent_id,
                amount_cents=amount_cents,
                reference=reference,
                pending_payout_cents=self.pending_payout_cents,
                settled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def aggregates(self, window: EarningsWindow, now: datetime | None = None) -> EarningsSummary:
        """Recompute total, count and average commission for ``window``."""
        start = window.starts_at(now or utcnow())
        selected = [r for r in self.records or [] if start is None or as_utc(r.recorded_at) >= start]
        total = sum(r.commission_cents for r in selected)
        count = len(selected)
        average = round_half_up(Decimal(total) / count) if count else 0
        return EarningsSummary(window=window, total_cents=total, count=count, average_cents=average)

    def history(self) -> list[EarningsRecord]:
        return sorted(self.records or [], key=lambda r: as_utc(r.recorded_at), reverse=True)


def ledger_for(agent_id: str) -> EarningsLedger:
    """The agent's ledger, or an empty unsaved one if nothing was booked yet."""
    try:
        return current_domain.repository_for(EarningsLedger).get(agent_id)
    except ObjectNotFoundError:
        return EarningsLedger.open(agent_id)
