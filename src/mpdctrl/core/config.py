"""Configuration manager using QSettings for persistent storage."""

import logging
from dataclasses import dataclass
from pathlib import Path

from PySide6.QtCore import QSettings

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 6600
DEFAULT_UPDATE_INTERVAL = 10.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 3
DEFAULT_RECONNECT_DELAY = 2.0

# MPD
_KEY_MPD_HOST = "mpd/host"
_KEY_MPD_PORT = "mpd/port"
_KEY_MPD_PASSWORD = "mpd/password"
_KEY_MPD_UPDATE_INTERVAL = "mpd/update_interval"
_KEY_MPD_AUTO_RECONNECT = "mpd/auto_reconnect"
_KEY_MPD_MAX_RECONNECT_ATTEMPTS = "mpd/max_reconnect_attempts"
_KEY_MPD_RECONNECT_DELAY = "mpd/reconnect_delay"

# UI integrations
_KEY_SHOW_NOTIFICATIONS = "ui/show_notifications"
_KEY_USE_SYSTEM_NOW_PLAYING = "ui/use_system_now_playing"

# Album art
_KEY_MUSIC_DIRECTORY = "art/music_directory"


@dataclass(frozen=True)
class MpdSettings:
    """Settings snapshot passed into the core.

    Attributes:
        host: MPD server hostname or IP.
        port: MPD server port.
        password: MPD password, empty for none.
        update_interval: Fallback polling interval in seconds.
        auto_reconnect: Reconnect automatically after failures.
        max_reconnect_attempts: Consecutive failures before giving up.
        reconnect_delay: Backoff unit in seconds.
        show_notifications: Desktop notifications on track change.
        use_system_now_playing: Publish to the OS now-playing display.
        music_directory: Music root override, or None to auto-detect.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    password: str = ""
    update_interval: float = DEFAULT_UPDATE_INTERVAL
    auto_reconnect: bool = True
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    show_notifications: bool = True
    use_system_now_playing: bool = True
    music_directory: Path | None = None


class ConfigManager:
    """Wrapper around QSettings for type-safe config access.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\MpdCtrl\\MpdCtrl
    - macOS: ~/Library/Preferences/com.MpdCtrl.MpdCtrl.plist
    - Linux: ~/.config/MpdCtrl/MpdCtrl.conf

    Example:
        config = ConfigManager()
        config.set_mpd_host("192.168.1.100")
        settings = config.mpd_settings()
    """

    def __init__(self, organization: str = "MpdCtrl", application: str = "MpdCtrl") -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
        """
        self._settings = QSettings(organization, application)

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    def mpd_settings(self) -> MpdSettings:
        """Return a snapshot of all settings the core consumes."""
        music_dir = self.get_music_directory()
        return MpdSettings(
            host=self.get_mpd_host(),
            port=self.get_mpd_port(),
            password=self.get_mpd_password(),
            update_interval=self.get_update_interval(),
            auto_reconnect=self.get_auto_reconnect(),
            max_reconnect_attempts=self.get_max_reconnect_attempts(),
            reconnect_delay=self.get_reconnect_delay(),
            show_notifications=self.get_show_notifications(),
            use_system_now_playing=self.get_use_system_now_playing(),
            music_directory=Path(music_dir).expanduser() if music_dir else None,
        )

    # -- MPD settings ----------------------------------------------------------

    def get_mpd_host(self) -> str:
        """Return the MPD host.

        Returns:
            Host string (default 127.0.0.1).
        """
        value = self._settings.value(_KEY_MPD_HOST, DEFAULT_HOST, str)
        return str(value) if value else DEFAULT_HOST

    def set_mpd_host(self, host: str) -> None:
        """Set the MPD host.

        Args:
            host: Hostname or IP.
        """
        self._settings.setValue(_KEY_MPD_HOST, host)

    def get_mpd_port(self) -> int:
        """Return the MPD port.

        Returns:
            Port number (default 6600).
        """
        value = self._settings.value(_KEY_MPD_PORT, DEFAULT_PORT, int)
        return max(1, min(65535, int(value)))  # type: ignore[arg-type]

    def set_mpd_port(self, port: int) -> None:
        """Set the MPD port.

        Args:
            port: Port number (1-65535).
        """
        self._settings.setValue(_KEY_MPD_PORT, max(1, min(65535, port)))

    def get_mpd_password(self) -> str:
        value = self._settings.value(_KEY_MPD_PASSWORD, "", str)
        return str(value) if value else ""

    def set_mpd_password(self, password: str) -> None:
        self._settings.setValue(_KEY_MPD_PASSWORD, password)

    def get_update_interval(self) -> float:
        """Return the fallback polling interval in seconds.

        Returns:
            Interval in seconds (default 10). Non-positive values
            fall back to the default.
        """
        value = self._settings.value(_KEY_MPD_UPDATE_INTERVAL, DEFAULT_UPDATE_INTERVAL, float)
        try:
            interval = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return DEFAULT_UPDATE_INTERVAL
        return interval if interval > 0 else DEFAULT_UPDATE_INTERVAL

    def set_update_interval(self, seconds: float) -> None:
        """Set the fallback polling interval.

        Args:
            seconds: Interval in seconds.
        """
        self._settings.setValue(_KEY_MPD_UPDATE_INTERVAL, float(seconds))

    def get_auto_reconnect(self) -> bool:
        return bool(self._settings.value(_KEY_MPD_AUTO_RECONNECT, True, bool))

    def set_auto_reconnect(self, enabled: bool) -> None:
        self._settings.setValue(_KEY_MPD_AUTO_RECONNECT, enabled)

    def get_max_reconnect_attempts(self) -> int:
        """Return the number of reconnect attempts (default 3, 1-20)."""
        value = self._settings.value(
            _KEY_MPD_MAX_RECONNECT_ATTEMPTS, DEFAULT_MAX_RECONNECT_ATTEMPTS, int
        )
        return max(1, min(20, int(value)))  # type: ignore[arg-type]

    def set_max_reconnect_attempts(self, attempts: int) -> None:
        self._settings.setValue(_KEY_MPD_MAX_RECONNECT_ATTEMPTS, max(1, min(20, attempts)))

    def get_reconnect_delay(self) -> float:
        """Return the reconnect backoff unit in seconds (default 2)."""
        value = self._settings.value(_KEY_MPD_RECONNECT_DELAY, DEFAULT_RECONNECT_DELAY, float)
        try:
            delay = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return DEFAULT_RECONNECT_DELAY
        return delay if delay > 0 else DEFAULT_RECONNECT_DELAY

    def set_reconnect_delay(self, seconds: float) -> None:
        self._settings.setValue(_KEY_MPD_RECONNECT_DELAY, float(seconds))

    # -- UI integration settings ----------------------------------------------

    def get_show_notifications(self) -> bool:
        return bool(self._settings.value(_KEY_SHOW_NOTIFICATIONS, True, bool))

    def set_show_notifications(self, enabled: bool) -> None:
        self._settings.setValue(_KEY_SHOW_NOTIFICATIONS, enabled)

    def get_use_system_now_playing(self) -> bool:
        return bool(self._settings.value(_KEY_USE_SYSTEM_NOW_PLAYING, True, bool))

    def set_use_system_now_playing(self, enabled: bool) -> None:
        self._settings.setValue(_KEY_USE_SYSTEM_NOW_PLAYING, enabled)

    # -- Album art settings ----------------------------------------------------

    def get_music_directory(self) -> str:
        """Return the music directory override.

        Returns:
            Path string, or empty string for auto-detection.
        """
        value = self._settings.value(_KEY_MUSIC_DIRECTORY, "", str)
        return str(value) if value else ""

    def set_music_directory(self, path: str) -> None:
        """Set the music directory override.

        Args:
            path: Directory path, or empty string for auto-detection.
        """
        self._settings.setValue(_KEY_MUSIC_DIRECTORY, path)

    # -- General settings ------------------------------------------------------

    def clear(self) -> None:
        """Clear all settings (useful for testing or reset)."""
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
