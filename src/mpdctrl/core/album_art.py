"""Album art resolution with memory and disk caching.

Artwork is cached per album (AlbumKey), not per file, since every track
of an album shares one cover. Lookup order:

1. Memory cache
2. Disk cache (entries older than 30 days are deleted and ignored)
3. Provider chain (embedded -> cover file -> Deezer)

Concurrent requests for an album that is already being resolved wait
for that resolution instead of starting a second chain. Misses are not
cached, so art that appears later (e.g. after a rescan) is found on the
next request.
"""

import asyncio
import logging
import os
import tempfile
import time
from collections.abc import Callable, Mapping
from contextlib import suppress
from pathlib import Path

from PySide6.QtCore import QStandardPaths
from PySide6.QtGui import QImage

from mpdctrl.api.album_art import (
    AlbumArtProvider,
    CoverFileProvider,
    DeezerAlbumArtProvider,
    EmbeddedArtProvider,
    FallbackAlbumArtProvider,
)
from mpdctrl.api.mpd.types import AlbumKey, Song

logger = logging.getLogger(__name__)

CACHE_EXPIRY_SECONDS = 30 * 24 * 60 * 60

# Checked in order after $XDG_MUSIC_DIR
MUSIC_DIRECTORY_CANDIDATES = (
    "~/Music",
    "/var/lib/mpd/music",
    "/usr/share/mpd/music",
    "/opt/homebrew/var/lib/mpd/music",
)


def default_cache_directory() -> Path:
    """Return the platform cache location for artwork."""
    location = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.CacheLocation)
    if location:
        return Path(location) / "AlbumArt"
    return Path.home() / ".cache" / "mpdctrl" / "AlbumArt"


def detect_music_directory(environ: Mapping[str, str] | None = None) -> Path | None:
    """Find a local MPD music directory.

    Args:
        environ: Environment to read XDG_MUSIC_DIR from (default os.environ).

    Returns:
        The first existing candidate directory, or None.
    """
    env = os.environ if environ is None else environ
    candidates: list[str] = []
    xdg = env.get("XDG_MUSIC_DIR")
    if xdg:
        candidates.append(xdg)
    candidates.extend(MUSIC_DIRECTORY_CANDIDATES)

    for candidate in candidates:
        path = Path(candidate).expanduser()
        if path.is_dir():
            logger.info("Found music directory: %s", path)
            return path

    logger.info("No music directory found in common locations")
    return None


def is_decodable_image(data: bytes) -> bool:
    """Return True if Qt can decode the bytes as an image."""
    if not data:
        return False
    return QImage().loadFromData(data)


def default_provider() -> AlbumArtProvider:
    """Return the standard embedded -> cover file -> Deezer chain."""
    return FallbackAlbumArtProvider(
        [
            EmbeddedArtProvider(),
            CoverFileProvider(),
            DeezerAlbumArtProvider(),
        ]
    )


class AlbumArtManager:
    """Resolve and cache album artwork.

    Must be used from a single event loop.

    Example:
        manager = AlbumArtManager()
        data = await manager.get_art(song)
        if data:
            pixmap.loadFromData(data)
    """

    def __init__(  # noqa: PLR0913
        self,
        provider: AlbumArtProvider | None = None,
        cache_directory: Path | None = None,
        music_directory: Path | None = None,
        *,
        detect_music_dir: bool = True,
        clock: Callable[[], float] = time.time,
        validator: Callable[[bytes], bool] = is_decodable_image,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            provider: Lookup chain (default: embedded, cover file, Deezer).
            cache_directory: Disk cache location (default: platform cache).
            music_directory: Local MPD music root.
            detect_music_dir: Auto-detect the music root if none is given.
            clock: Wall-clock time source, compared with file mtimes.
            validator: Returns True for image bytes worth caching.
            log: Logger to use instead of the module logger.
        """
        self._log = log or logger
        self._provider = provider or default_provider()
        self._cache_directory = cache_directory or default_cache_directory()
        self._clock = clock
        self._validator = validator

        if music_directory is None and detect_music_dir:
            music_directory = detect_music_directory()
        self._music_directory = music_directory

        self._memory: dict[AlbumKey, bytes] = {}
        self._in_flight: dict[AlbumKey, list[asyncio.Future[bytes | None]]] = {}
        # Bumped on cache clear; results of older chains are not stored
        self._generation = 0

        try:
            self._cache_directory.mkdir(parents=True, exist_ok=True)
            self._log.info("Album art disk cache at %s", self._cache_directory)
        except OSError as e:
            self._log.warning("Failed to create album art cache %s: %s", self._cache_directory, e)

    @property
    def music_directory(self) -> Path | None:
        return self._music_directory

    @property
    def cache_directory(self) -> Path:
        return self._cache_directory

    @property
    def memory_cache_size(self) -> int:
        return len(self._memory)

    def is_fetching(self, song: Song) -> bool:
        """Return True while a lookup chain runs for the song's album."""
        return self.cache_key(song) in self._in_flight

    @staticmethod
    def cache_key(song: Song) -> AlbumKey:
        """Return the cache identity for a song.

        Songs without artist and album tags are keyed by their file so
        untagged files don't share one cover.
        """
        key = song.album_key
        if key.is_empty:
            return AlbumKey(artist="", album=f"file:{song.file}")
        return key

    def set_music_directory(self, path: Path | None) -> None:
        """Change the music root and drop all cached artwork."""
        self._music_directory = path
        self._log.info("Music directory set to %s", path)
        self.clear_cache()

    def clear_cache(self) -> None:
        """Drop memory entries and delete every disk cache file."""
        self._memory.clear()
        self._in_flight.clear()
        self._generation += 1

        if not self._cache_directory.is_dir():
            return
        removed = 0
        for path in self._cache_directory.iterdir():
            if not path.is_file():
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                self._log.warning("Failed to remove cached art %s: %s", path, e)
        self._log.info("Album art cache cleared (%d files)", removed)

    async def get_art(self, song: Song) -> bytes | None:
        """Return artwork bytes for the song's album, or None.

        Args:
            song: The song to find art for.

        Returns:
            Image bytes, or None if no tier found any art.
        """
        key = self.cache_key(song)

        data = self._memory.get(key)
        if data is not None:
            return data

        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._read_from_disk, key)
        if data is not None:
            self._log.debug("Album art disk cache hit: %s", key.filename())
            self._memory[key] = data
            return data

        # Resolved by another caller while we were reading the disk
        data = self._memory.get(key)
        if data is not None:
            return data

        waiters = self._in_flight.get(key)
        if waiters is not None:
            self._log.debug("Album art already being fetched: %s", key.filename())
            future: asyncio.Future[bytes | None] = loop.create_future()
            waiters.append(future)
            return await future

        return await self._resolve(key, song)

    async def _resolve(self, key: AlbumKey, song: Song) -> bytes | None:
        """Run the provider chain once, sharing the result with waiters."""
        generation = self._generation
        waiters: list[asyncio.Future[bytes | None]] = []
        self._in_flight[key] = waiters

        data: bytes | None = None
        try:
            try:
                art = await self._provider.fetch(song, self._music_directory)
            except Exception as e:  # noqa: BLE001
                self._log.warning("Album art lookup failed for %s: %s", key.filename(), e)
                art = None
            if art is not None and art.is_valid and self._validator(art.data):
                data = art.data
                if generation == self._generation:
                    self._memory[key] = data
                    loop = asyncio.get_running_loop()
                    await loop.run_in_executor(None, self._write_to_disk, key, data)
            elif art is not None:
                self._log.debug("Discarding undecodable art from %s", art.source)
        finally:
            if self._in_flight.get(key) is waiters:
                del self._in_flight[key]
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(data)

        return data

    def _read_from_disk(self, key: AlbumKey) -> bytes | None:
        """Read a disk cache entry (blocking); expired entries are deleted."""
        path = self._cache_directory / key.filename()
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as e:
            self._log.debug("Cannot stat cached art %s: %s", path, e)
            return None

        if self._clock() - mtime > CACHE_EXPIRY_SECONDS:
            self._log.debug("Cached art expired, removing: %s", path.name)
            with suppress(OSError):
                path.unlink()
            return None

        try:
            data = path.read_bytes()
        except OSError as e:
            self._log.debug("Cannot read cached art %s: %s", path, e)
            return None
        if not self._validator(data):
            return None
        return data

    def _write_to_disk(self, key: AlbumKey, data: bytes) -> None:
        """Write a disk cache entry atomically (blocking)."""
        path = self._cache_directory / key.filename()
        tmp_name = ""
        try:
            self._cache_directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self._cache_directory, suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
            os.replace(tmp_name, path)
            self._log.debug("Saved album art to disk cache: %s", path.name)
        except OSError as e:
            self._log.warning("Failed to save album art to %s: %s", path, e)
            if tmp_name:
                with suppress(OSError):
                    os.unlink(tmp_name)
