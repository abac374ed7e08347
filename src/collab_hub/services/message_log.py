"""Append-only message log between the user and agents.

Every user message schedules a canned reply from the addressed agent after
``reply_delay`` seconds. Replies are timer threads; ``stop()`` cancels the
ones still waiting.
"""

import logging
import random
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from .agent_registry import AgentRegistry
from .local_store import LocalStore, load_json, save_json
from .notification_router import NotificationRouter

logger = logging.getLogger(__name__)

MESSAGES_KEY = "agent_messages"
USER = "user"
DEFAULT_REPLY_DELAY_SECONDS = 1.5

CANNED_REPLIES = (
    "Got it. I'll factor that into my next pass.",
    "Understood, working on it now.",
    "Thanks, I'll coordinate with the other agents on this.",
    "Noted. I'll report back when I have an update.",
)


class MessageValidationError(ValueError):
    """Rejected message input."""


@dataclass
class Message:
    id: str
    sender: str
    recipient: str
    text: str
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "text": self.text,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_stored(cls, data) -> "Message | None":
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                id=str(data["id"]),
                sender=str(data["from"]),
                recipient=str(data["to"]),
                text=str(data.get("text", "")),
                timestamp=str(data.get("timestamp", "")),
            )
        except KeyError:
            return None


class MessageLog:
    def __init__(
        self,
        store: LocalStore,
        router: NotificationRouter | None = None,
        registry: AgentRegistry | None = None,
        reply_delay: float = DEFAULT_REPLY_DELAY_SECONDS,
        rng: random.Random | None = None,
    ):
        self._store = store
        self._router = router
        self._registry = registry
        self._reply_delay = reply_delay
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._timers: set[threading.Timer] = set()

    def _load(self) -> list[Message]:
        stored = load_json(self._store, MESSAGES_KEY, default=[])
        if not isinstance(stored, list):
            logger.warning("Stored message log is not an array, starting empty")
            return []
        messages = [Message.from_stored(item) for item in stored]
        return [m for m in messages if m is not None]

    def _append(self, message: Message) -> None:
        with self._lock:
            messages = self._load()
            messages.append(message)
            save_json(self._store, MESSAGES_KEY, [m.to_dict() for m in messages])

    def list_messages(self) -> list[Message]:
        with self._lock:
            return self._load()

    def send(self, to_agent: str, text: str) -> Message:
        """Append a user message to ``to_agent`` and schedule the agent's reply."""
        text = (text or "").strip()
        if not text:
            raise MessageValidationError("Message text must not be empty")
        if self._registry is not None:
            self._registry.get(to_agent)

        message = _new_message(USER, to_agent, text)
        self._append(message)
        logger.debug(f"Message {message.id} sent to {to_agent}")
        self._schedule_reply(to_agent)
        return message

    def _schedule_reply(self, agent_id: str) -> None:
        timer = threading.Timer(self._reply_delay, self._reply, args=(agent_id,))
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()

    def _reply(self, agent_id: str) -> Message:
        reply = _new_message(agent_id, USER, self._rng.choice(CANNED_REPLIES))
        try:
            self._append(reply)
            if self._router is not None:
                name = self._registry.display_name(agent_id) if self._registry else agent_id
                self._router.announce("message", f"{name}: {reply.text}", {"message_id": reply.id})
        except Exception:
            logger.exception(f"Simulated reply from {agent_id} failed")
        finally:
            with self._lock:
                self._timers = {t for t in self._timers if t.is_alive() and t is not threading.current_thread()}
        return reply

    def pending_replies(self) -> int:
        with self._lock:
            return sum(1 for t in self._timers if t.is_alive())

    def join(self, timeout: float | None = None) -> None:
        """Wait for scheduled replies to be written."""
        with self._lock:
            timers = list(self._timers)
        for timer in timers:
            timer.join(timeout)

    def stop(self) -> None:
        with self._lock:
            timers, self._timers = list(self._timers), set()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info(f"Cancelled {len(timers)} pending message replies")


def _new_message(sender: str, recipient: str, text: str) -> Message:
    return Message(
        id=uuid.uuid4().hex,
        sender=sender,
        recipient=recipient,
        text=text,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
