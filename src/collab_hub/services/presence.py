"""Agent presence simulation.

A ``PresenceSource`` proposes presence changes; the simulator applies one
proposal per tick on a background thread. The default source picks an agent
and a status uniformly at random and stands in for a real liveness feed.
"""

import logging
import random
import threading

from .agent_registry import AgentRegistry, PresenceStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5


class PresenceSource:
    """Produces the next presence change, or None for no change this tick."""

    def next_update(self, agent_ids: list[str]) -> tuple[str, PresenceStatus] | None:
        raise NotImplementedError


class RandomPresenceSource(PresenceSource):
    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def next_update(self, agent_ids):
        if not agent_ids:
            return None
        agent_id = self._rng.choice(agent_ids)
        status = self._rng.choice(list(PresenceStatus))
        return agent_id, status


class PresenceSimulator:
    """Background service applying presence updates at a fixed interval."""

    def __init__(
        self,
        registry: AgentRegistry,
        source: PresenceSource | None = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        broadcaster_getter=None,
    ) -> None:
        self._registry = registry
        self._source = source or RandomPresenceSource()
        self._interval = interval
        self._get_broadcaster = broadcaster_getter
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            logger.warning("Presence simulator already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._tick_loop, daemon=True, name="PresenceSimulator"
        )
        self._thread.start()
        logger.info(f"Presence simulator started (interval={self._interval}s)")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
            self._thread = None
            logger.info("Presence simulator stopped")

    def _tick_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Presence tick failed")

    def tick(self) -> tuple[str, PresenceStatus] | None:
        """Apply a single update from the source. Safe to call directly."""
        update = self._source.next_update(self._registry.ids)
        if update is None:
            return None
        agent_id, status = update
        presence = self._registry.set_presence(agent_id, status)
        logger.debug(f"Presence: {agent_id} -> {presence.status.value}")

        if self._get_broadcaster is not None:
            try:
                self._get_broadcaster().broadcast("presence", {
                    "agent_id": agent_id,
                    "status": presence.status.value,
                    "updated_at": presence.updated_at.isoformat(),
                })
            except Exception as e:
                logger.debug(f"Failed to broadcast presence (non-fatal): {e}")
        return agent_id, presence.status
