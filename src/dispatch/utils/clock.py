"""UTC time helpers shared by offers, deliveries and the ledger."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    Persisted timestamps may come back naive depending on the provider;
    they are always written as UTC, so a naive value is tagged, not shifted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value) -> datetime | None:
    """Accept a datetime or an ISO-8601 string (``Z`` suffix allowed)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
