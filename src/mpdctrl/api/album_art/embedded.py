"""Embedded album art extraction with ffmpeg.

Copies the attached picture stream of a local audio file into a
temporary image file. ffmpeg's exit status is not trusted: success
means a recognizable image was written. A missing ffmpeg binary or a
song file that cannot be found locally is a plain miss.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path

from mpdctrl.api.album_art.provider import AlbumArt, AlbumArtProvider, local_song_path
from mpdctrl.api.mpd.types import Song

logger = logging.getLogger(__name__)

FFMPEG_NAME = "ffmpeg"

# Checked after PATH; GUI launches on macOS often lack Homebrew's PATH
CONVENTIONAL_PATHS = (
    "/opt/homebrew/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
)

EXTRACT_TIMEOUT = 10  # seconds


def find_ffmpeg(configured_path: str | None = None) -> Path | None:
    """Find the ffmpeg binary.

    Search order:
    1. User-configured path
    2. System PATH (``shutil.which``)
    3. Conventional install locations

    Args:
        configured_path: Optional user-configured path to ffmpeg.

    Returns:
        Path to ffmpeg if found, None otherwise.
    """
    if configured_path:
        user_path = Path(configured_path)
        if user_path.is_file():
            return user_path
        logger.warning("User-configured ffmpeg not found: %s", configured_path)

    system = shutil.which(FFMPEG_NAME)
    if system is not None:
        return Path(system)

    for candidate in CONVENTIONAL_PATHS:
        path = Path(candidate)
        if path.is_file():
            return path

    logger.debug("ffmpeg binary not found")
    return None


class EmbeddedArtProvider(AlbumArtProvider):
    """Extract artwork embedded in the song file's tags.

    Example:
        provider = EmbeddedArtProvider()
        art = await provider.fetch(song, Path("/var/lib/mpd/music"))
    """

    def __init__(self, ffmpeg_path: str | None = None) -> None:
        """Initialize the provider.

        Args:
            ffmpeg_path: Optional explicit ffmpeg path.
        """
        self._ffmpeg_path = ffmpeg_path
        self._ffmpeg: Path | None = None
        self._searched = False

    @property
    def name(self) -> str:
        """Return provider name."""
        return "Embedded"

    @property
    def ffmpeg(self) -> Path | None:
        """Return the ffmpeg binary, looked up once."""
        if not self._searched:
            self._ffmpeg = find_ffmpeg(self._ffmpeg_path)
            self._searched = True
        return self._ffmpeg

    async def fetch(self, song: Song, music_directory: Path | None = None) -> AlbumArt | None:
        """Extract embedded art from the local copy of the song.

        Args:
            song: The song.
            music_directory: Local MPD music root.

        Returns:
            AlbumArt if an embedded picture was extracted, None otherwise.
        """
        source = local_song_path(song, music_directory)
        if source is None or not source.is_file():
            return None

        ffmpeg = self.ffmpeg
        if ffmpeg is None:
            return None

        # Run blocking subprocess in thread pool
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._extract, ffmpeg, source)
        if not data:
            return None
        return AlbumArt.from_bytes(data, source=self.name)

    def _extract(self, ffmpeg: Path, source: Path) -> bytes:
        """Run ffmpeg (blocking) and return the written image bytes."""
        with tempfile.TemporaryDirectory(prefix="mpdctrl-art-") as tmp:
            output = Path(tmp) / "cover.jpg"
            cmd = [
                str(ffmpeg),
                "-loglevel",
                "error",
                "-y",
                "-i",
                str(source),
                "-an",
                "-vcodec",
                "copy",
                "-frames:v",
                "1",
                str(output),
            ]
            try:
                subprocess.run(
                    cmd,
                    capture_output=True,
                    timeout=EXTRACT_TIMEOUT,
                    check=False,
                )
            except FileNotFoundError:
                logger.debug("ffmpeg not executable: %s", ffmpeg)
                return b""
            except subprocess.TimeoutExpired:
                logger.debug("ffmpeg timed out on %s", source)
                return b""

            if not output.is_file():
                return b""
            return output.read_bytes()
