"""Delivery target and customer contact value objects.

Both the Offer (before acceptance) and the DeliveryOrder (after) describe the
same order, so these value objects are shared across the two aggregates.
"""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import String

from dispatch.domain import dispatch


class TargetKind(Enum):
    STATION = "Station"
    ADDRESS = "Address"


@dispatch.value_object
class DeliveryTarget:
    """Where the order is handed over.

    Station deliveries meet a passenger at a train station (coach and seat
    narrow it down); address deliveries go to a street address.
    """

    kind = String(required=True, choices=TargetKind)
    station_name = String(max_length=100, sanitize=False)
    coach = String(max_length=20, sanitize=False)
    seat = String(max_length=20, sanitize=False)
    address = String(max_length=500, sanitize=False)

    @invariant.post
    def target_must_be_locatable(self):
        if self.kind == TargetKind.STATION.value and not self.station_name:
            raise ValidationError({"station_name": ["Station deliveries need a station name"]})
        if self.kind == TargetKind.ADDRESS.value and not self.address:
            raise ValidationError({"address": ["Address deliveries need an address"]})

    def describe(self) -> str:
        if self.kind == TargetKind.STATION.value:
            parts = [f"{self.station_name} Station"]
            if self.coach:
                parts.append(f"Coach {self.coach}")
            if self.seat:
                parts.append(f"Seat {self.seat}")
            return ", ".join(parts)
        return self.address


@dispatch.value_object
class ContactInfo:
    name = String(max_length=100, sanitize=False)
    phone = String(max_length=30, sanitize=False)


def target_from_payload(data: dict | None) -> DeliveryTarget:
    data = data or {}
    return DeliveryTarget(
        kind=data.get("kind") or TargetKind.STATION.value,
        station_name=data.get("station_name"),
        coach=data.get("coach"),
        seat=data.get("seat"),
        address=data.get("address"),
    )


def contact_from_payload(data: dict | None) -> ContactInfo | None:
    if not data:
        return None
    return ContactInfo(name=data.get("name"), phone=data.get("phone"))
