"""Local cover file lookup.

Looks next to the song file for conventional cover image names.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from mpdctrl.api.album_art.provider import AlbumArt, AlbumArtProvider, local_song_path
from mpdctrl.api.mpd.types import Song

logger = logging.getLogger(__name__)

# Checked in order; the first loadable file wins
COVER_FILENAMES = (
    "cover.jpg",
    "cover.jpeg",
    "cover.png",
    "cover.webp",
    "folder.jpg",
    "folder.jpeg",
    "folder.png",
    "albumart.jpg",
    "albumart.jpeg",
    "albumart.png",
    "front.jpg",
    "front.jpeg",
    "front.png",
)


class CoverFileProvider(AlbumArtProvider):
    """Find cover.jpg, folder.png, etc. in the song's directory.

    Example:
        provider = CoverFileProvider()
        art = await provider.fetch(song, Path.home() / "Music")
    """

    @property
    def name(self) -> str:
        """Return provider name."""
        return "CoverFile"

    async def fetch(self, song: Song, music_directory: Path | None = None) -> AlbumArt | None:
        """Read the first conventional cover file that holds an image.

        Args:
            song: The song.
            music_directory: Local MPD music root.

        Returns:
            AlbumArt if a cover file was found, None otherwise.
        """
        source = local_song_path(song, music_directory)
        if source is None or not source.parent.is_dir():
            return None

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._find_cover, source.parent)

    def _find_cover(self, directory: Path) -> AlbumArt | None:
        """Scan a directory for cover files (blocking)."""
        for filename in COVER_FILENAMES:
            path = directory / filename
            if not path.is_file():
                continue
            try:
                art = AlbumArt.from_bytes(path.read_bytes(), source=self.name)
            except OSError as e:
                logger.debug("Cannot read %s: %s", path, e)
                continue
            if art is not None:
                return art
            logger.debug("Ignoring unreadable cover file %s", path)
        return None
