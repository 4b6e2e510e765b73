"""API layer: MPD protocol client and album art providers."""

from mpdctrl.api.mpd.client import MpdClient
from mpdctrl.api.mpd.protocol import MpdError
from mpdctrl.api.mpd.transport import (
    MpdConnectionError,
    MpdConnectionLostError,
    MpdNotConnectedError,
)

__all__ = [
    "MpdClient",
    "MpdError",
    "MpdConnectionError",
    "MpdConnectionLostError",
    "MpdNotConnectedError",
]
