"""Agent session context passed to every dispatch component at construction."""

from dataclasses import dataclass, field
from datetime import datetime

from dispatch.config import DispatchSettings
from dispatch.utils.clock import utcnow


@dataclass
class AgentSession:
    """Who is driving this process and whether they are taking work."""

    agent_id: str
    name: str
    settings: DispatchSettings
    vehicle_type: str = "Bike"
    online: bool = False
    started_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_settings(cls, settings: DispatchSettings) -> "AgentSession":
        return cls(
            agent_id=settings.agent_id,
            name=settings.agent_name,
            settings=settings,
            vehicle_type=settings.vehicle_type,
        )

    @property
    def shift_status(self) -> str:
        return "Active" if self.online else "Offline"
