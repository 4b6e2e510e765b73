"""MPD control client: protocol core, playback state and album art."""

__version__ = "0.1.0"
