"""Album art provider module with fallback chain.

Provides album art from multiple sources, in lookup order:
1. Embedded - picture tag of the local song file, via ffmpeg
2. CoverFile - cover.jpg, folder.png, ... next to the song file
3. Deezer - public search API, by artist and album
"""

from mpdctrl.api.album_art.cover_file import CoverFileProvider
from mpdctrl.api.album_art.deezer import DeezerAlbumArtProvider
from mpdctrl.api.album_art.embedded import EmbeddedArtProvider, find_ffmpeg
from mpdctrl.api.album_art.provider import (
    AlbumArt,
    AlbumArtProvider,
    FallbackAlbumArtProvider,
    sniff_mime_type,
)

__all__ = [
    "AlbumArt",
    "AlbumArtProvider",
    "CoverFileProvider",
    "DeezerAlbumArtProvider",
    "EmbeddedArtProvider",
    "FallbackAlbumArtProvider",
    "find_ffmpeg",
    "sniff_mime_type",
]
