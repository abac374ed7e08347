"""Notification delivery channels: in-app banner, desktop alert, audio tone.

Each channel implements ``deliver(category, text, options) -> DeliveryResult``.
Expected failures come back as a result carrying a ``ChannelError``; the
router additionally guards against anything a channel raises.
"""

import enum
import logging
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable

from .tone import AudioContext, AudioUnavailableError, get_audio_context

logger = logging.getLogger(__name__)


class NotificationCategory(str, enum.Enum):
    """Semantic class of an announcement; selects the gating preference."""

    MESSAGE = "message"
    TASK = "task"
    CRITICAL = "critical"


BANNER_SEVERITY = {
    NotificationCategory.MESSAGE: "info",
    NotificationCategory.TASK: "success",
    NotificationCategory.CRITICAL: "error",
}

DESKTOP_TITLES = {
    NotificationCategory.MESSAGE: "New Agent Message",
    NotificationCategory.TASK: "Task Update",
    NotificationCategory.CRITICAL: "Critical Agent Alert",
}


class ChannelError(Exception):
    """A channel could not deliver an announcement."""

    def __init__(self, channel: str, message: str):
        super().__init__(message)
        self.channel = channel


class PermissionNotGrantedError(ChannelError):
    """Desktop notifications have not been granted."""


@dataclass
class DeliveryResult:
    """Outcome of one channel delivery attempt."""

    channel: str
    delivered: bool
    skipped: bool = False
    error: ChannelError | None = None

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "delivered": self.delivered,
            "skipped": self.skipped,
            "error": str(self.error) if self.error else None,
        }


class Channel:
    """Base class for delivery channels."""

    name = "channel"

    def deliver(
        self, category: NotificationCategory, text: str, options: dict | None = None,
    ) -> DeliveryResult:
        raise NotImplementedError

    def _ok(self) -> DeliveryResult:
        return DeliveryResult(channel=self.name, delivered=True)

    def _skip(self, error: ChannelError | None = None) -> DeliveryResult:
        return DeliveryResult(channel=self.name, delivered=False, skipped=True, error=error)

    def _fail(self, message: str, error_cls: type[ChannelError] = ChannelError) -> DeliveryResult:
        return DeliveryResult(
            channel=self.name, delivered=False, error=error_cls(self.name, message),
        )


class BannerChannel(Channel):
    """Transient in-app banner pushed to dashboard clients over SSE."""

    name = "banner"

    def __init__(
        self,
        broadcaster_getter: Callable,
        duration_ms: int = 4000,
        critical_duration_ms: int = 10000,
    ):
        self._get_broadcaster = broadcaster_getter
        self.duration_ms = duration_ms
        self.critical_duration_ms = critical_duration_ms

    def show(self, severity: str, text: str, duration_ms: int | None = None,
             category: str | None = None) -> int:
        """Publish a banner event. Returns the number of clients reached."""
        payload = {
            "severity": severity,
            "text": text,
            "category": category,
            "duration_ms": duration_ms or self.duration_ms,
        }
        return self._get_broadcaster().broadcast("banner", payload)

    def deliver(self, category, text, options=None) -> DeliveryResult:
        category = NotificationCategory(category)
        duration = (options or {}).get("duration_ms")
        if duration is None and category is NotificationCategory.CRITICAL:
            duration = self.critical_duration_ms
        try:
            self.show(BANNER_SEVERITY[category], text, duration, category.value)
        except RuntimeError as e:
            return self._fail(f"Banner broadcast unavailable: {e}")
        return self._ok()


class DesktopPermission:
    """One-time permission grant for OS-level desktop alerts.

    State is ``default`` until requested, then ``granted`` if the host
    notifier binary is present, otherwise ``denied``.
    """

    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"

    def __init__(self, notifier: str = "terminal-notifier", state: str = DEFAULT):
        self.notifier = notifier
        self._state = state
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def granted(self) -> bool:
        return self._state == self.GRANTED

    def request_permission(self) -> str:
        with self._lock:
            if self._state == self.DEFAULT:
                if shutil.which(self.notifier):
                    self._state = self.GRANTED
                else:
                    self._state = self.DENIED
                    logger.warning(
                        f"{self.notifier} not found - desktop notifications unavailable"
                    )
            return self._state


class DesktopChannel(Channel):
    """System notification via terminal-notifier. Silent when not permitted."""

    name = "desktop"

    def __init__(
        self,
        permission: DesktopPermission,
        icon: str | None = None,
        group: str = "collab-hub",
        timeout: float = 5,
    ):
        self.permission = permission
        self.icon = icon
        self.group = group
        self.timeout = timeout

    def build_command(self, title: str, message: str) -> list[str]:
        cmd = [
            self.permission.notifier,
            "-title", title,
            "-message", message,
            "-group", self.group,
        ]
        if self.icon:
            cmd.extend(["-appIcon", self.icon])
        return cmd

    def deliver(self, category, text, options=None) -> DeliveryResult:
        if not self.permission.granted:
            return self._skip(PermissionNotGrantedError(
                self.name, f"Desktop permission is {self.permission.state}"
            ))

        category = NotificationCategory(category)
        title = (options or {}).get("title") or DESKTOP_TITLES[category]
        cmd = self.build_command(title, text)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            return self._fail("Desktop notification timed out")
        except OSError as e:
            return self._fail(f"Desktop notifier failed to start: {e}")
        if result.returncode != 0:
            return self._fail(f"{cmd[0]} returned {result.returncode}: {result.stderr.strip()}")
        return self._ok()


class AudioChannel(Channel):
    """Short synthesized tone played at the requested volume."""

    name = "audio"

    def __init__(
        self,
        context_getter: Callable[[], AudioContext] = get_audio_context,
        frequency_hz: float = 800,
        duration_ms: int = 300,
    ):
        self._get_context = context_getter
        self.frequency_hz = frequency_hz
        self.duration_ms = duration_ms

    def deliver(self, category, text, options=None) -> DeliveryResult:
        volume = (options or {}).get("volume", 0.5)
        if volume <= 0:
            return self._skip()
        try:
            self._get_context().play_tone(self.frequency_hz, self.duration_ms, volume)
        except AudioUnavailableError as e:
            return self._fail(str(e))
        except OSError as e:
            return self._fail(f"Audio player failed: {e}")
        return self._ok()
