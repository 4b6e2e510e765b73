"""MPD protocol data types.

This module defines frozen dataclasses and enums for MPD responses and
client-visible state. Instances are replaced wholesale on refresh, never
mutated in place.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class MpdResponse:
    """One decoded response frame.

    Attributes:
        fields: Ordered (key, value) pairs. Repeated keys are preserved.
        raw: The raw response text including the terminator line.
        ack: The ACK line verbatim if the command failed, else empty.
    """

    fields: tuple[tuple[str, str], ...] = ()
    raw: str = ""
    ack: str = ""

    @property
    def ok(self) -> bool:
        """Return True if the response ended with OK."""
        return not self.ack

    def get(self, key: str, default: str = "") -> str:
        """Return the first value for a key (case-insensitive)."""
        wanted = key.lower()
        for name, value in self.fields:
            if name.lower() == wanted:
                return value
        return default

    def get_all(self, key: str) -> list[str]:
        """Return every value for a key, in order."""
        wanted = key.lower()
        return [value for name, value in self.fields if name.lower() == wanted]

    def to_dict(self) -> dict[str, str]:
        """Return a lowercase-keyed dict, first occurrence wins."""
        result: dict[str, str] = {}
        for name, value in self.fields:
            result.setdefault(name.lower(), value)
        return result


class PlayerState(Enum):
    """Server playback state."""

    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"

    @classmethod
    def from_string(cls, value: str) -> PlayerState:
        """Parse MPD's state string, treating unknown values as stopped."""
        try:
            return cls(value)
        except ValueError:
            return cls.STOP


class SingleMode(Enum):
    """Single mode: stop after the current song."""

    OFF = "0"
    ON = "1"
    ONESHOT = "oneshot"

    @classmethod
    def from_string(cls, value: str) -> SingleMode:
        """Parse a status value; anything unrecognized is off."""
        try:
            return cls(value)
        except ValueError:
            return cls.OFF

    def next(self) -> SingleMode:
        """Return the next mode in the off -> on -> oneshot -> off cycle."""
        cycle = {SingleMode.OFF: SingleMode.ON, SingleMode.ON: SingleMode.ONESHOT}
        return cycle.get(self, SingleMode.OFF)


class ConsumeMode(Enum):
    """Consume mode: remove songs from the queue once played."""

    OFF = "0"
    ON = "1"
    ONESHOT = "oneshot"

    @classmethod
    def from_string(cls, value: str) -> ConsumeMode:
        """Parse a status value; anything unrecognized is off."""
        try:
            return cls(value)
        except ValueError:
            return cls.OFF

    def next(self) -> ConsumeMode:
        """Return the next mode. Cycles off -> on -> off; oneshot drops to off."""
        return ConsumeMode.ON if self is ConsumeMode.OFF else ConsumeMode.OFF


@dataclass(frozen=True)
class PlaybackOptions:
    """Queue playback options reported by ``status``."""

    random: bool = False
    repeat: bool = False
    single: SingleMode = SingleMode.OFF
    consume: ConsumeMode = ConsumeMode.OFF

    @classmethod
    def from_status_fields(cls, data: dict[str, str]) -> PlaybackOptions:
        """Build options from a lowercase status dict."""
        return cls(
            random=data.get("random") == "1",
            repeat=data.get("repeat") == "1",
            single=SingleMode.from_string(data.get("single", "0")),
            consume=ConsumeMode.from_string(data.get("consume", "0")),
        )


@dataclass(frozen=True)
class Song:
    """A song from ``currentsong``, ``playlistinfo`` or ``search``.

    Attributes:
        file: Path relative to MPD's music directory.
        artist: Artist tag, if present.
        title: Title tag, if present.
        album: Album tag, if present.
        album_artist: AlbumArtist tag, if present.
        duration: Duration in seconds, if known.
        elapsed: Elapsed seconds at the time of the snapshot, if known.
        pos: Position in the queue, or -1.
        id: Queue song id, or -1.
    """

    file: str
    artist: str | None = None
    title: str | None = None
    album: str | None = None
    album_artist: str | None = None
    duration: float | None = None
    elapsed: float | None = None
    pos: int = -1
    id: int = -1

    @property
    def display_title(self) -> str:
        """Return title for display, with filename fallback."""
        if self.title:
            return self.title
        name = self.file.rsplit("/", 1)[-1]
        if "." in name:
            name = name.rsplit(".", 1)[0]
        return name

    @property
    def display_artist(self) -> str:
        """Return artist for display, falling back to album_artist."""
        return self.artist or self.album_artist or ""

    @property
    def album_key(self) -> AlbumKey:
        """Return the artwork cache identity for this song."""
        return AlbumKey.for_song(self)


@dataclass(frozen=True)
class MpdStatus:
    """MPD player status.

    Attributes:
        state: Player state.
        options: Random/repeat/single/consume.
        volume: Volume level (0-100), or -1 if no mixer.
        crossfade: Crossfade in seconds.
        song: Current song position in the queue.
        song_id: Current song ID.
        elapsed: Elapsed time in seconds, if reported.
        duration: Total duration of the current song, if reported.
        playlist_length: Number of songs in the queue.
        bitrate: Current bitrate in kbps.
        audio: Audio format string (e.g., "44100:16:2").
        updating_db: Job id of a running database update, or -1.
        error: Error message if any.
    """

    state: PlayerState = PlayerState.STOP
    options: PlaybackOptions = field(default_factory=PlaybackOptions)
    volume: int = -1
    crossfade: int = 0
    song: int = -1
    song_id: int = -1
    elapsed: float | None = None
    duration: float | None = None
    playlist_length: int = 0
    bitrate: int = 0
    audio: str = ""
    updating_db: int = -1
    error: str = ""

    @property
    def is_playing(self) -> bool:
        """Return True if currently playing."""
        return self.state is PlayerState.PLAY


@dataclass(frozen=True)
class MpdOutput:
    """An audio output from ``outputs``."""

    id: int
    name: str
    enabled: bool
    plugin: str = ""


@dataclass(frozen=True)
class MpdStats:
    """Database statistics from ``stats``."""

    artists: int = 0
    albums: int = 0
    songs: int = 0
    uptime: int = 0
    playtime: int = 0
    db_playtime: int = 0
    db_update: int = 0


@dataclass(frozen=True)
class StoredPlaylist:
    """A stored playlist from ``listplaylists``."""

    name: str
    last_modified: str = ""


class ConnectionStatus(Enum):
    """Connection lifecycle phase."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionState:
    """Connection status with the failure reason attached to ``FAILED`` only."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    reason: str = ""

    def __post_init__(self) -> None:
        if self.reason and self.status is not ConnectionStatus.FAILED:
            raise ValueError(f"reason is only valid for FAILED, not {self.status.value}")

    @classmethod
    def disconnected(cls) -> ConnectionState:
        return cls(ConnectionStatus.DISCONNECTED)

    @classmethod
    def connecting(cls) -> ConnectionState:
        return cls(ConnectionStatus.CONNECTING)

    @classmethod
    def connected(cls) -> ConnectionState:
        return cls(ConnectionStatus.CONNECTED)

    @classmethod
    def failed(cls, reason: str) -> ConnectionState:
        return cls(ConnectionStatus.FAILED, reason or "unknown error")

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    def __str__(self) -> str:
        if self.status is ConnectionStatus.FAILED:
            return f"failed: {self.reason}"
        return self.status.value


_WHITESPACE = re.compile(r"\s+")


def _normalize(value: str | None) -> str:
    return _WHITESPACE.sub(" ", (value or "").strip()).casefold()


@dataclass(frozen=True)
class AlbumKey:
    """Normalized (artist, album) identity used to cache artwork.

    Many files share one album's art, so the cache is keyed by album
    rather than by file path.
    """

    artist: str
    album: str

    @classmethod
    def for_song(cls, song: Song) -> AlbumKey:
        """Derive the key from a song, preferring the album artist."""
        return cls(
            artist=_normalize(song.album_artist or song.artist),
            album=_normalize(song.album),
        )

    @property
    def is_empty(self) -> bool:
        return not self.artist and not self.album

    def filename(self) -> str:
        """Return a filesystem-safe cache file name.

        The readable part is lossy, so a short digest of the full key is
        appended to keep distinct albums in distinct files.
        """
        raw = f"{self.artist}\x1f{self.album}"
        digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]  # noqa: S324
        safe = re.sub(r"[^\w.-]+", "_", f"{self.artist}_{self.album}").strip("._")[:80]
        return f"{safe or 'unknown'}-{digest}.img"
