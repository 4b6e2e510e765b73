"""Deezer album art provider.

Uses Deezer's public album search (no API key required) and downloads
the first result's largest cover.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any

from mpdctrl.api.album_art.provider import AlbumArt, AlbumArtProvider
from mpdctrl.api.mpd.types import Song

logger = logging.getLogger(__name__)

# Deezer Search API endpoint
DEEZER_SEARCH_URL = "https://api.deezer.com/search/album"

USER_AGENT = "MpdCtrl/1.0"

# Request timeout in seconds
REQUEST_TIMEOUT = 5

# Largest size Deezer offers (1000x1000)
COVER_FIELD = "cover_xl"


class DeezerAlbumArtProvider(AlbumArtProvider):
    """Fetch album art from the Deezer Search API.

    Example:
        provider = DeezerAlbumArtProvider()
        art = await provider.fetch(song)
        if art:
            save_image(art.data, "cover.jpg")
    """

    @property
    def name(self) -> str:
        """Return provider name."""
        return "Deezer"

    async def fetch(self, song: Song, music_directory: Path | None = None) -> AlbumArt | None:
        """Search Deezer by artist and album and download the cover.

        Args:
            song: The song; needs artist (or album artist) and album tags.
            music_directory: Not used.

        Returns:
            AlbumArt if found, None otherwise.
        """
        _ = music_directory
        artist = song.album_artist or song.artist
        if not artist or not song.album:
            return None

        cover_url = await self._search_cover(artist, song.album)
        if not cover_url:
            return None

        # Run blocking request in thread pool
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._fetch_binary, cover_url)
        if not data:
            return None

        return AlbumArt.from_bytes(data, source=self.name, url=cover_url)

    async def _search_cover(self, artist: str, album: str) -> str:
        """Return the first result's cover URL, or empty string."""
        query = urllib.parse.urlencode({"q": f'artist:"{artist}" album:"{album}"', "limit": 1})
        url = f"{DEEZER_SEARCH_URL}?{query}"

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self._fetch_json, url)

        if result:
            albums = result.get("data", [])
            if albums:
                cover_url = albums[0].get(COVER_FIELD)
                if cover_url:
                    logger.debug("Found Deezer cover for %s - %s", artist, album)
                    return str(cover_url)

        logger.debug("No Deezer results for %s - %s", artist, album)
        return ""

    def _fetch_json(self, url: str) -> dict[str, Any] | None:
        """Fetch JSON from URL (blocking).

        Args:
            url: URL to fetch.

        Returns:
            Parsed JSON object or None if the payload is not an object.
        """
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        with urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT) as response:
            payload = json.loads(response.read().decode())
        return payload if isinstance(payload, dict) else None

    def _fetch_binary(self, url: str) -> bytes:
        """Fetch binary data from URL (blocking).

        Args:
            url: URL to fetch.

        Returns:
            Binary data.
        """
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        with urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT) as response:
            return response.read()
