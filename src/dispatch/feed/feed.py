"""Notification feed — per-agent, newest-first list of operator messages.

Entries are written by ``NotificationFeedProjector`` for domain events and
directly by the application services for errors they surface.
"""

import threading
from datetime import datetime
from enum import Enum
from uuid import uuid4

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.utils.clock import utcnow

DEFAULT_FEED_LIMIT = 50

_sequence_lock = threading.Lock()


class FeedType(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    NAVIGATION = "navigation"


@dispatch.projection
class FeedEntry:
    entry_id = Identifier(identifier=True, required=True)
    agent_id = Identifier(required=True)
    entry_type = String(required=True, choices=FeedType)
    message = String(required=True, max_length=500, sanitize=False)
    posted_at = DateTime(required=True)
    sequence = Integer(required=True, min_value=1)


def format_money(cents: int) -> str:
    return f"Rs. {cents / 100:,.2f}"


def append_entry(agent_id: str, entry_type: FeedType, message: str, at: datetime | None = None) -> FeedEntry:
    """Append an entry after the agent's latest one."""
    repo = current_domain.repository_for(FeedEntry)
    with _sequence_lock:
        sequence = repo._dao.query.filter(agent_id=agent_id).all().total + 1
        entry = FeedEntry(
            entry_id=str(uuid4()),
            agent_id=agent_id,
            entry_type=entry_type.value,
            message=message,
            posted_at=at or utcnow(),
            sequence=sequence,
        )
        repo.add(entry)
    return entry


class NotificationFeed:
    """Read and write access to the feed for the application services."""

    def post(self, agent_id: str, entry_type: FeedType, message: str, at: datetime | None = None) -> FeedEntry:
        return append_entry(agent_id, entry_type, message, at=at)

    def error(self, agent_id: str, message: str) -> FeedEntry:
        return append_entry(agent_id, FeedType.ERROR, message)

    def entries(self, agent_id: str, limit: int = DEFAULT_FEED_LIMIT) -> list[FeedEntry]:
        results = (
            current_domain.repository_for(FeedEntry)
            ._dao.query.filter(agent_id=agent_id)
            .order_by("-sequence")
            .limit(limit)
            .all()
        )
        return list(results.items)
