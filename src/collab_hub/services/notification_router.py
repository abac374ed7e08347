"""Notification router: maps an announcement to the channels preferences allow."""

import logging

from .notification_channels import (
    AudioChannel,
    BannerChannel,
    Channel,
    ChannelError,
    DeliveryResult,
    DesktopChannel,
    NotificationCategory,
)
from .preferences import PreferencesService

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Fans an announcement out to banner, desktop and audio channels.

    The per-category preference is the only gate on the banner. Desktop and
    audio are additionally gated by their own toggles. A failing channel
    never stops the others.
    """

    def __init__(
        self,
        preferences: PreferencesService,
        banner: BannerChannel,
        desktop: DesktopChannel,
        audio: AudioChannel,
    ):
        self.preferences = preferences
        self.banner = banner
        self.desktop = desktop
        self.audio = audio

    def announce(
        self, category: str, text: str, options: dict | None = None,
    ) -> list[DeliveryResult]:
        """Announce an event. Returns one result per channel attempted."""
        category = NotificationCategory(category)
        prefs = self.preferences.current
        if not prefs.allows(category.value):
            logger.debug(f"Announcement suppressed by preferences: category={category.value}")
            return []

        options = dict(options or {})
        results = [self._deliver(self.banner, category, text, options)]
        if prefs.desktop_notifications:
            results.append(self._deliver(self.desktop, category, text, options))
        if prefs.sound_alerts:
            results.append(
                self._deliver(self.audio, category, text, {**options, "volume": prefs.sound_volume})
            )
        return results

    def alert_failure(self, text: str) -> None:
        """Show an error banner for a failed user action. Not preference gated."""
        try:
            self.banner.show("error", text)
        except Exception as e:
            logger.warning(f"Failure banner could not be shown: {e}")

    def _deliver(
        self, channel: Channel, category: NotificationCategory, text: str, options: dict,
    ) -> DeliveryResult:
        try:
            result = channel.deliver(category, text, options)
        except Exception as e:
            logger.warning(f"Channel {channel.name} raised during delivery: {e}")
            return DeliveryResult(channel=channel.name, delivered=False, error=_wrap(channel, e))
        if result.error and not result.skipped:
            logger.warning(f"Channel {channel.name} failed: {result.error}")
        return result


def _wrap(channel: Channel, exc: Exception) -> ChannelError:
    if isinstance(exc, ChannelError):
        return exc
    return ChannelError(channel.name, f"{type(exc).__name__}: {exc}")
