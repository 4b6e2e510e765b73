"""Base album art provider and fallback chain.

Defines the provider protocol and a fallback chain that tries
multiple providers in order until one succeeds.
"""

from __future__ import annotations

import json
import logging
import subprocess
import urllib.error
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from mpdctrl.api.mpd.types import Song

logger = logging.getLogger(__name__)


def sniff_mime_type(data: bytes) -> str | None:
    """Return the image MIME type from magic numbers, or None if unknown.

    Recognizes JPEG, PNG, GIF and WebP.
    """
    if len(data) >= 3 and data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if len(data) >= 8 and data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if len(data) >= 6 and data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def local_song_path(song: Song, music_directory: Path | None) -> Path | None:
    """Map a song's MPD URI onto the local filesystem.

    Args:
        song: Song whose ``file`` is relative to MPD's music directory.
        music_directory: Local music root.

    Returns:
        Path of the song file under the music root (which may not exist),
        or None without a music root. Streams (URIs with a scheme) never
        resolve.
    """
    if music_directory is None or not song.file or "://" in song.file:
        return None
    return music_directory / song.file.lstrip("/")


@dataclass(frozen=True)
class AlbumArt:
    """Album art data from any provider.

    Attributes:
        data: Raw image bytes.
        mime_type: MIME type (e.g., "image/jpeg").
        url: Original URL if fetched from HTTP.
        source: Provider name that supplied this art.
    """

    data: bytes
    mime_type: str = "image/jpeg"
    url: str = ""
    source: str = ""

    @classmethod
    def from_bytes(cls, data: bytes, source: str = "", url: str = "") -> AlbumArt | None:
        """Wrap image bytes, or return None if they are not a known image format."""
        mime_type = sniff_mime_type(data)
        if mime_type is None:
            return None
        return cls(data=data, mime_type=mime_type, url=url, source=source)

    @property
    def is_valid(self) -> bool:
        """Check if this album art has valid data."""
        return len(self.data) > 0


class AlbumArtProvider(ABC):
    """Abstract base class for album art providers.

    Subclasses implement fetching album art from a specific source
    (embedded tags, cover files, Deezer, etc.).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""

    @abstractmethod
    async def fetch(self, song: Song, music_directory: Path | None = None) -> AlbumArt | None:
        """Fetch album art for the given song.

        Args:
            song: The song (file path relative to the music root, tags).
            music_directory: Local MPD music root, if known.

        Returns:
            AlbumArt if found, None otherwise.
        """


class FallbackAlbumArtProvider(AlbumArtProvider):
    """Album art provider that tries multiple providers in order.

    Stops at the first provider that returns valid art.

    Example:
        provider = FallbackAlbumArtProvider([
            EmbeddedArtProvider(),
            CoverFileProvider(),
            DeezerAlbumArtProvider(),
        ])
        art = await provider.fetch(song, Path("/var/lib/mpd/music"))
    """

    def __init__(self, providers: list[AlbumArtProvider]) -> None:
        """Initialize with a list of providers to try.

        Args:
            providers: Providers to try in order.
        """
        self._providers = providers

    @property
    def name(self) -> str:
        """Return combined provider names."""
        names = [p.name for p in self._providers]
        return f"Fallback({', '.join(names)})"

    async def fetch(self, song: Song, music_directory: Path | None = None) -> AlbumArt | None:
        """Try each provider until one succeeds.

        Args:
            song: The song to find art for.
            music_directory: Local MPD music root, if known.

        Returns:
            AlbumArt from first successful provider, None if all fail.
        """
        label = f"{song.display_artist} - {song.album or song.display_title}"

        for provider in self._providers:
            try:
                art = await provider.fetch(song, music_directory)
                if art and art.is_valid:
                    logger.debug("Album art found via %s for %s", provider.name, label)
                    return art
            except (
                urllib.error.URLError,
                TimeoutError,
                OSError,
                subprocess.SubprocessError,
                json.JSONDecodeError,
            ) as e:
                # Expected when a tool, file or service is unavailable
                logger.debug("%s failed for %s: %s", provider.name, label, e)
            except Exception as e:  # noqa: BLE001
                # Unexpected errors should be logged at warning level
                logger.warning("%s unexpected error for %s: %s", provider.name, label, e)

        logger.debug("No album art found for %s", label)
        return None
