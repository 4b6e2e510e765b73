"""Playback state cache with Qt signals.

PlaybackState mirrors the MPD server's player state (current song,
player state, options, volume, crossfade) and emits Qt signals when
something changes. Between status refreshes it interpolates elapsed
time locally so consumers see a smoothly advancing position without
per-tick network traffic.
"""

import logging
import time
from collections.abc import Callable

from PySide6.QtCore import QObject, Signal

from mpdctrl.api.mpd.types import (
    AlbumKey,
    ConnectionState,
    MpdStatus,
    PlaybackOptions,
    PlayerState,
    Song,
)

logger = logging.getLogger(__name__)


class PlaybackState(QObject):
    """Client-visible mirror of MPD player state.

    Snapshots (Song, PlaybackOptions, MpdStatus) are replaced wholesale,
    never patched field by field.

    Example:
        state = PlaybackState()
        state.song_changed.connect(lambda song: print(song.display_title))
        state.apply_song(song)
    """

    connection_changed = Signal(object)  # ConnectionState
    status_changed = Signal(object)  # MpdStatus
    song_changed = Signal(object)  # Song | None
    player_state_changed = Signal(object)  # PlayerState
    options_changed = Signal(object)  # PlaybackOptions
    volume_changed = Signal(int)
    crossfade_changed = Signal(int)
    album_changed = Signal(object)  # Song whose AlbumKey differs from the previous one

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize with empty state.

        Args:
            clock: Monotonic time source in seconds (injectable for tests).
        """
        super().__init__()
        self._clock = clock
        self._connection = ConnectionState.disconnected()
        self._status: MpdStatus | None = None
        self._song: Song | None = None
        self._album_key: AlbumKey | None = None

        # Interpolation anchor: (server elapsed, received at)
        self._elapsed_anchor: tuple[float, float] | None = None
        self._frozen_elapsed = 0.0

    @property
    def connection(self) -> ConnectionState:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def status(self) -> MpdStatus | None:
        """Return the last applied status, or None before the first refresh."""
        return self._status

    @property
    def song(self) -> Song | None:
        return self._song

    @property
    def player_state(self) -> PlayerState:
        return self._status.state if self._status else PlayerState.STOP

    @property
    def options(self) -> PlaybackOptions:
        return self._status.options if self._status else PlaybackOptions()

    @property
    def volume(self) -> int:
        """Return volume 0-100, or -1 if unknown or no mixer."""
        return self._status.volume if self._status else -1

    @property
    def crossfade(self) -> int:
        return self._status.crossfade if self._status else 0

    @property
    def duration(self) -> float | None:
        """Return the current song's duration, preferring the status value."""
        if self._status and self._status.duration is not None:
            return self._status.duration
        if self._song and self._song.duration is not None:
            return self._song.duration
        return None

    @property
    def elapsed(self) -> float:
        """Return elapsed seconds, interpolated while playing.

        While playing this is the last server value plus the time since
        it was received, clamped to the duration. Otherwise it is the
        value frozen at the last pause/stop.
        """
        if self.player_state is not PlayerState.PLAY or self._elapsed_anchor is None:
            return self._frozen_elapsed

        server_elapsed, received_at = self._elapsed_anchor
        value = server_elapsed + max(0.0, self._clock() - received_at)
        duration = self.duration
        if duration is not None and duration > 0:
            value = min(value, duration)
        return value

    def set_connection(self, state: ConnectionState) -> None:
        """Record a new connection state; clears player state on disconnect."""
        if state == self._connection:
            return
        self._connection = state
        if not state.is_connected:
            self._elapsed_anchor = None
        self.connection_changed.emit(state)

    def apply_status(self, status: MpdStatus) -> None:
        """Apply a freshly parsed ``status`` response and emit changes.

        Args:
            status: The new status snapshot.
        """
        old = self._status
        # Freeze with the pre-update interpolation before the state flips
        interpolated = self.elapsed
        self._status = status

        now = self._clock()
        if status.state is PlayerState.PLAY:
            elapsed = status.elapsed if status.elapsed is not None else interpolated
            self._elapsed_anchor = (elapsed, now)
            self._frozen_elapsed = elapsed
        else:
            self._elapsed_anchor = None
            if status.elapsed is not None:
                self._frozen_elapsed = status.elapsed
            elif status.state is PlayerState.STOP:
                self._frozen_elapsed = 0.0
            else:
                self._frozen_elapsed = interpolated

        if old is None or old.state != status.state:
            self.player_state_changed.emit(status.state)
        if old is None or old.options != status.options:
            self.options_changed.emit(status.options)
        if old is None or old.volume != status.volume:
            self.volume_changed.emit(status.volume)
        if old is None or old.crossfade != status.crossfade:
            self.crossfade_changed.emit(status.crossfade)
        if old != status:
            self.status_changed.emit(status)

    def apply_song(self, song: Song | None) -> None:
        """Replace the current song.

        Emits ``album_changed`` when the song's AlbumKey differs from
        the previous song's, so artwork is looked up once per album.

        Args:
            song: The new current song, or None when the queue is empty.
        """
        if song == self._song:
            return
        self._song = song
        self.song_changed.emit(song)

        key = song.album_key if song else None
        if key != self._album_key:
            self._album_key = key
            if song is not None:
                logger.debug("Album changed: %s / %s", key.artist, key.album)
                self.album_changed.emit(song)

    def reset(self) -> None:
        """Forget all server state (keeps the connection state)."""
        self._status = None
        self._song = None
        self._album_key = None
        self._elapsed_anchor = None
        self._frozen_elapsed = 0.0
