"""Per-user notification preferences persisted in the local store."""

import logging
import threading
from dataclasses import asdict, dataclass, fields
from typing import Any

from .local_store import LocalStore, load_json, save_json

logger = logging.getLogger(__name__)

PREFERENCES_KEY = "agent_notification_preferences"

EMAIL_FREQUENCIES = ("realtime", "hourly", "daily", "weekly")

BOOLEAN_FIELDS = (
    "desktop_notifications",
    "sound_alerts",
    "email_digest",
    "notify_on_messages",
    "notify_on_task_assignment",
    "notify_on_critical_triggers",
)


class PreferencesValidationError(ValueError):
    """Raised when a preference update carries an invalid value."""

    def __init__(self, field_name: str, message: str):
        super().__init__(message)
        self.field_name = field_name


@dataclass(frozen=True)
class NotificationPreferences:
    """Notification preferences for the current user."""

    desktop_notifications: bool = True
    sound_alerts: bool = True
    email_digest: bool = True
    notify_on_messages: bool = True
    notify_on_task_assignment: bool = True
    notify_on_critical_triggers: bool = True
    sound_volume: float = 0.5
    email_frequency: str = "daily"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def allows(self, category: str) -> bool:
        """Whether the per-category toggle allows an announcement."""
        return {
            "message": self.notify_on_messages,
            "task": self.notify_on_task_assignment,
            "critical": self.notify_on_critical_triggers,
        }.get(category, False)

    @classmethod
    def from_stored(cls, data: Any) -> "NotificationPreferences":
        """Build preferences from stored content, falling back per field.

        Anything that is not a dict, and any field with the wrong type or an
        out-of-range value, falls back to the default.
        """
        if not isinstance(data, dict):
            return cls()
        values: dict[str, Any] = {}
        for name in BOOLEAN_FIELDS:
            if isinstance(data.get(name), bool):
                values[name] = data[name]
        volume = data.get("sound_volume")
        if isinstance(volume, (int, float)) and not isinstance(volume, bool) and 0 <= volume <= 1:
            values["sound_volume"] = float(volume)
        if data.get("email_frequency") in EMAIL_FREQUENCIES:
            values["email_frequency"] = data["email_frequency"]
        return cls(**values)


def validate_update(update: dict) -> dict[str, Any]:
    """Validate a partial preference update. Returns the cleaned values."""
    known = {f.name for f in fields(NotificationPreferences)}
    cleaned: dict[str, Any] = {}
    for name, value in update.items():
        if name not in known:
            raise PreferencesValidationError(name, f"Unknown preference: {name}")
        if name in BOOLEAN_FIELDS:
            if not isinstance(value, bool):
                raise PreferencesValidationError(name, f"{name} must be a boolean")
        elif name == "sound_volume":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise PreferencesValidationError(name, "sound_volume must be a number")
            if value < 0 or value > 1:
                raise PreferencesValidationError(name, "sound_volume must be between 0 and 1")
            value = float(value)
        elif name == "email_frequency":
            if value not in EMAIL_FREQUENCIES:
                raise PreferencesValidationError(
                    name, f"email_frequency must be one of: {', '.join(EMAIL_FREQUENCIES)}"
                )
        cleaned[name] = value
    return cleaned


class PreferencesService:
    """Holds the current preferences; reads once, writes on explicit save."""

    def __init__(self, store: LocalStore, desktop_permission=None):
        self._store = store
        self._desktop_permission = desktop_permission
        self._lock = threading.Lock()
        self._current = NotificationPreferences.from_stored(load_json(store, PREFERENCES_KEY))
        logger.debug(f"Notification preferences loaded: {self._current}")

    @property
    def current(self) -> NotificationPreferences:
        return self._current

    def get_preferences(self) -> dict[str, Any]:
        return self._current.to_dict()

    def save(self, update: dict) -> NotificationPreferences:
        """Apply a partial update and persist it synchronously.

        Raises:
            PreferencesValidationError: If any value is invalid (nothing is saved)
        """
        cleaned = validate_update(update)
        with self._lock:
            merged = NotificationPreferences(**{**self._current.to_dict(), **cleaned})
            save_json(self._store, PREFERENCES_KEY, merged.to_dict())
            self._current = merged
        logger.info(f"Notification preferences saved: {sorted(cleaned)}")

        if merged.desktop_notifications and self._desktop_permission is not None:
            if self._desktop_permission.state == "default":
                state = self._desktop_permission.request_permission()
                logger.info(f"Desktop notification permission: {state}")
        return merged

    def category_enabled(self, category: str) -> bool:
        return self._current.allows(category)
