"""Fan-out of banner, presence and collaboration events to SSE subscribers.

Each subscriber owns a queue drained by its stream generator. A subscriber
that stops polling for longer than the idle timeout (its stream died without
unregistering) is dropped by the reaper thread.
"""

import itertools
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from queue import Empty, Queue
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Payload fields that name an agent; an agent filter matches any of them.
AGENT_FIELDS = ("agent_id", "source_agent", "target_agent")


@dataclass
class SSEEvent:
    """One event as written to the stream."""

    event_type: str
    data: dict
    event_id: int

    def format(self) -> str:
        return (
            f"event: {self.event_type}\n"
            f"id: {self.event_id}\n"
            f"data: {json.dumps(self.data, default=str)}\n\n"
        )


@dataclass
class Subscriber:
    client_id: str
    types: frozenset = frozenset()
    agent_id: Optional[str] = None
    event_queue: Queue = field(default_factory=Queue)
    last_polled: float = field(default_factory=time.monotonic)
    is_active: bool = True

    def wants(self, event_type: str, data: dict) -> bool:
        if self.types and event_type not in self.types:
            return False
        if self.agent_id and self.agent_id not in {data.get(f) for f in AGENT_FIELDS}:
            return False
        return True


class Broadcaster:
    def __init__(
        self,
        max_connections: int = 100,
        heartbeat_interval: float = 30.0,
        connection_timeout: float = 60.0,
        retry_after: int = 5,
    ) -> None:
        self._max_connections = max_connections
        self._heartbeat_interval = heartbeat_interval
        self._idle_timeout = connection_timeout
        self._retry_after = retry_after

        self._subscribers: dict[str, Subscriber] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

        self._stopped = threading.Event()
        self._stopped.set()
        self._reaper: Optional[threading.Thread] = None

    @property
    def active_connections(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def heartbeat_interval(self) -> float:
        return self._heartbeat_interval

    @property
    def retry_after(self) -> int:
        return self._retry_after

    @property
    def running(self) -> bool:
        return not self._stopped.is_set()

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._reaper = threading.Thread(target=self._reap_loop, daemon=True, name="sse-reaper")
        self._reaper.start()
        logger.info(
            f"Broadcaster started: max_connections={self._max_connections}, "
            f"idle_timeout={self._idle_timeout}s"
        )

    def stop(self) -> None:
        """Stop the reaper and wake every stream so it can finish."""
        if not self.running:
            return
        self._stopped.set()
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.is_active = False
            subscriber.event_queue.put(None)
        if self._reaper is not None:
            self._reaper.join(timeout=1.0)
            self._reaper = None
        logger.info(f"Broadcaster stopped ({len(subscribers)} streams closed)")

    def register_client(
        self,
        types: Optional[list[str]] = None,
        agent_id: Optional[str] = None,
    ) -> Optional[str]:
        """Add a subscriber. Returns its id, or None when the limit is reached."""
        subscriber = Subscriber(
            client_id=uuid.uuid4().hex,
            types=frozenset(types or ()),
            agent_id=agent_id,
        )
        with self._lock:
            if len(self._subscribers) >= self._max_connections:
                logger.warning(f"SSE connection limit reached ({self._max_connections})")
                return None
            self._subscribers[subscriber.client_id] = subscriber
        return subscriber.client_id

    def unregister_client(self, client_id: str) -> bool:
        with self._lock:
            subscriber = self._subscribers.pop(client_id, None)
        if subscriber is None:
            return False
        subscriber.is_active = False
        logger.debug(f"SSE subscriber {client_id} removed")
        return True

    def get_client(self, client_id: str) -> Optional[Subscriber]:
        with self._lock:
            return self._subscribers.get(client_id)

    def broadcast(self, event_type: str, data: dict) -> int:
        """Queue an event for every interested subscriber. Returns how many."""
        with self._lock:
            event = SSEEvent(event_type=event_type, data=data, event_id=next(self._ids))
            targets = [s for s in self._subscribers.values() if s.wants(event_type, data)]
        for subscriber in targets:
            subscriber.event_queue.put(event)
        logger.debug(f"Broadcast {event_type}#{event.event_id} to {len(targets)} subscribers")
        return len(targets)

    def get_next_event(self, client_id: str, timeout: float = 30.0) -> Optional[SSEEvent]:
        """Block up to ``timeout`` for the subscriber's next event."""
        subscriber = self.get_client(client_id)
        if subscriber is None or not subscriber.is_active:
            return None
        subscriber.last_polled = time.monotonic()
        try:
            return subscriber.event_queue.get(timeout=timeout)
        except Empty:
            return None
        finally:
            subscriber.last_polled = time.monotonic()

    def reap_idle(self) -> list[str]:
        """Drop subscribers that have not polled within the idle timeout."""
        cutoff = time.monotonic() - self._idle_timeout - self._heartbeat_interval
        with self._lock:
            idle = [cid for cid, s in self._subscribers.items() if s.last_polled < cutoff]
        for client_id in idle:
            self.unregister_client(client_id)
        if idle:
            logger.info(f"Dropped {len(idle)} idle SSE subscribers")
        return idle

    def _reap_loop(self) -> None:
        interval = max(1.0, self._idle_timeout / 2)
        while not self._stopped.wait(interval):
            try:
                self.reap_idle()
            except Exception as e:
                logger.error(f"SSE reaper error: {e}")

    def get_health_status(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self.running else "stopped",
            "active_connections": self.active_connections,
            "max_connections": self._max_connections,
            "running": self.running,
        }


_broadcaster: Optional[Broadcaster] = None
_broadcaster_lock = threading.Lock()


def get_broadcaster() -> Broadcaster:
    if _broadcaster is None:
        raise RuntimeError("Broadcaster not initialized. Call init_broadcaster first.")
    return _broadcaster


def init_broadcaster(config: Optional[dict] = None) -> Broadcaster:
    """Create and start the process-wide broadcaster (idempotent)."""
    global _broadcaster
    with _broadcaster_lock:
        if _broadcaster is None:
            sse = (config or {}).get("sse", {})
            _broadcaster = Broadcaster(
                max_connections=sse.get("max_connections", 100),
                heartbeat_interval=sse.get("heartbeat_interval_seconds", 30),
                connection_timeout=sse.get("connection_timeout_seconds", 60),
                retry_after=sse.get("retry_after_seconds", 5),
            )
            _broadcaster.start()
        return _broadcaster


def shutdown_broadcaster() -> None:
    global _broadcaster
    with _broadcaster_lock:
        broadcaster, _broadcaster = _broadcaster, None
    if broadcaster is not None:
        broadcaster.stop()
