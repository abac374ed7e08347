"""Static agent roster with mutable presence."""

import enum
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable


class PresenceStatus(str, enum.Enum):
    ACTIVE = "active"
    IDLE = "idle"
    BUSY = "busy"


@dataclass(frozen=True)
class Agent:
    """Identity of a processing role. Never changes after startup."""

    id: str
    display_name: str
    role_color: str
    short_name: str


@dataclass
class Presence:
    status: PresenceStatus = PresenceStatus.ACTIVE
    updated_at: datetime | None = None


DEFAULT_AGENTS = (
    Agent("market_monitor", "Market Monitor", "#3b82f6", "MM"),
    Agent("strategy_doc_generator", "Strategy Doc Generator", "#a855f7", "SDG"),
    Agent("knowledge_curator", "Knowledge Curator", "#10b981", "KC"),
)


class UnknownAgentError(KeyError):
    """Raised when an agent id is not in the registry."""


class AgentRegistry:
    """Immutable roster of agents plus their presence state."""

    def __init__(self, agents: Iterable[Agent] = DEFAULT_AGENTS):
        self._agents: dict[str, Agent] = {}
        for agent in agents:
            if agent.id in self._agents:
                raise ValueError(f"Duplicate agent id: {agent.id}")
            self._agents[agent.id] = agent
        self._presence = {agent_id: Presence() for agent_id in self._agents}
        self._lock = threading.Lock()

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    @property
    def ids(self) -> list[str]:
        return list(self._agents)

    def all(self) -> list[Agent]:
        return list(self._agents.values())

    def get(self, agent_id: str) -> Agent:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise UnknownAgentError(agent_id) from None

    def display_name(self, agent_id: str) -> str:
        """Display name for an agent, or the raw id when unknown."""
        agent = self._agents.get(agent_id)
        return agent.display_name if agent else agent_id

    def presence(self, agent_id: str) -> Presence:
        with self._lock:
            current = self._presence[self.get(agent_id).id]
            return Presence(current.status, current.updated_at)

    def set_presence(self, agent_id: str, status: PresenceStatus) -> Presence:
        presence = Presence(PresenceStatus(status), datetime.now(timezone.utc))
        with self._lock:
            self._presence[self.get(agent_id).id] = presence
        return presence

    def snapshot(self) -> list[dict]:
        with self._lock:
            return [
                {
                    "id": agent.id,
                    "display_name": agent.display_name,
                    "role_color": agent.role_color,
                    "short_name": agent.short_name,
                    "presence_status": self._presence[agent.id].status.value,
                    "presence_updated_at": (
                        self._presence[agent.id].updated_at.isoformat()
                        if self._presence[agent.id].updated_at else None
                    ),
                }
                for agent in self._agents.values()
            ]
