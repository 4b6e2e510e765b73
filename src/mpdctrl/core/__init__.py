"""Core business logic layer.

This module contains the core application logic that bridges the
async MPD client with the Qt UI layer.

Classes:
    PlaybackState: Playback state cache with Qt signals.
    MpdController: Keeps PlaybackState in sync; fire-and-refresh commands.
    AlbumArtManager: Cached, de-duplicated album art lookup.
    MpdWorker: QThread worker for the async client.
    ConfigManager: QSettings wrapper for configuration.
"""

from mpdctrl.core.album_art import AlbumArtManager
from mpdctrl.core.config import ConfigManager, MpdSettings
from mpdctrl.core.controller import MpdController
from mpdctrl.core.state import PlaybackState
from mpdctrl.core.worker import MpdWorker

__all__ = [
    "AlbumArtManager",
    "ConfigManager",
    "MpdController",
    "MpdSettings",
    "MpdWorker",
    "PlaybackState",
]
