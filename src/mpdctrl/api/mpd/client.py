"""Async MPD client.

``MpdClient`` wires the transport, command pipeline, idle controller and
connection supervisor together and exposes the MPD commands used by the
controller as coroutines returning typed results.

All methods must be called from the event loop that owns the client.

Example:
    client = MpdClient("192.168.1.100")
    client.set_event_handlers(on_ready=lambda: print("connected"))
    client.connect()
    ...
    status = await client.status()
    if status.is_playing:
        song = await client.currentsong()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from mpdctrl.api.mpd.idle import IdleController
from mpdctrl.api.mpd.pipeline import CommandPipeline
from mpdctrl.api.mpd.protocol import (
    format_command,
    parse_current_song,
    parse_outputs,
    parse_playlists,
    parse_songs,
    parse_stats,
    parse_status,
)
from mpdctrl.api.mpd.supervisor import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RECONNECT_DELAY,
    ConnectionSupervisor,
)
from mpdctrl.api.mpd.transport import (
    MpdNotConnectedError,
    StreamTransport,
    Transport,
)
from mpdctrl.api.mpd.types import (
    ConnectionState,
    ConsumeMode,
    MpdOutput,
    MpdResponse,
    MpdStats,
    MpdStatus,
    SingleMode,
    Song,
    StoredPlaylist,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6600
MAX_VOLUME = 100
MAX_CROSSFADE = 120


class MpdClient:
    """Async MPD client.

    Attributes:
        host: MPD server hostname or IP.
        port: MPD server port (default 6600).
        password: Optional password, sent first after every connect.
    """

    def __init__(  # noqa: PLR0913
        self,
        host: str,
        port: int = DEFAULT_PORT,
        password: str = "",
        *,
        transport: Transport | None = None,
        auto_reconnect: bool = True,
        max_reconnect_attempts: int = DEFAULT_MAX_ATTEMPTS,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize MPD client.

        Args:
            host: MPD server hostname or IP.
            port: MPD server port.
            password: Optional password for authentication.
            transport: Transport to use (default: StreamTransport).
            auto_reconnect: Reconnect automatically after a failure.
            max_reconnect_attempts: Failures after which retrying stops.
            reconnect_delay: Backoff unit in seconds.
            log: Logger to use instead of the module logger.
        """
        self.host = host
        self.port = port
        self.password = password
        self._log = log or logger

        self._transport = transport or StreamTransport()
        self._pipeline = CommandPipeline(self._transport, on_drained=self._on_drained)
        self._idle = IdleController(self._pipeline, on_changed=self._on_idle_changed)
        self._supervisor = ConnectionSupervisor(
            self._transport,
            host,
            port,
            auto_reconnect=auto_reconnect,
            max_attempts=max_reconnect_attempts,
            base_delay=reconnect_delay,
        )
        self._supervisor.set_event_handlers(
            on_ready=self._on_ready,
            on_lost=self._on_lost,
            on_state_change=self._on_state_change,
        )

        self._on_ready_cb: Callable[[], None] | None = None
        self._on_state_change_cb: Callable[[ConnectionState], None] | None = None
        self._on_idle_change_cb: Callable[[list[str]], None] | None = None

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._supervisor.state

    @property
    def is_connected(self) -> bool:
        """Return True if connected to MPD."""
        return self._supervisor.state.is_connected and self._pipeline.is_active

    @property
    def server_version(self) -> str:
        """Return MPD protocol version from the greeting."""
        return self._pipeline.server_version

    @property
    def reconnect_attempts(self) -> int:
        """Return consecutive failed connection attempts."""
        return self._supervisor.attempts

    @property
    def is_idling(self) -> bool:
        """Return True while an idle command is outstanding."""
        return self._idle.is_idling

    def set_event_handlers(
        self,
        on_ready: Callable[[], None] | None = None,
        on_state_change: Callable[[ConnectionState], None] | None = None,
        on_idle_change: Callable[[list[str]], None] | None = None,
    ) -> None:
        """Set handlers for client events.

        Args:
            on_ready: Called once the connection is usable for commands.
            on_state_change: Called with every new ConnectionState.
            on_idle_change: Called with subsystem names reported by idle.
        """
        self._on_ready_cb = on_ready
        self._on_state_change_cb = on_state_change
        self._on_idle_change_cb = on_idle_change

    def connect(self) -> None:
        """Start connecting. No-op if already connected or connecting."""
        self._supervisor.connect()

    def reconnect(self) -> None:
        """Connect again, resetting the automatic retry budget."""
        self._supervisor.reconnect()

    def disconnect(self) -> None:
        """Disconnect and fail every pending command."""
        self._idle.disable()
        self._supervisor.disconnect()

    def enable_idle(self) -> None:
        """Keep an idle command outstanding whenever nothing else is queued."""
        self._idle.enable()

    def disable_idle(self) -> None:
        """Stop entering idle mode."""
        self._idle.disable()

    def _on_ready(self) -> None:
        self._pipeline.start()
        if self.password:
            future = self._pipeline.enqueue(format_command("password", self.password))
            future.add_done_callback(self._on_password_done)
        if self._on_ready_cb is not None:
            self._on_ready_cb()

    def _on_password_done(self, future: asyncio.Future[MpdResponse]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._log.warning("MPD password rejected: %s", error)

    def _on_lost(self, error: Exception) -> None:
        # Idle is re-enabled by whoever refreshes state after the next connect
        self._idle.disable()
        self._idle.reset()
        self._pipeline.stop(error)

    def _on_state_change(self, state: ConnectionState) -> None:
        if self._on_state_change_cb is not None:
            self._on_state_change_cb(state)

    def _on_drained(self) -> None:
        self._idle.maybe_enter()

    def _on_idle_changed(self, subsystems: list[str]) -> None:
        if self._on_idle_change_cb is not None:
            self._on_idle_change_cb(subsystems)

    async def _command(self, command: str, *args: object) -> MpdResponse:
        """Send a command and wait for its response.

        Leaves idle mode first if necessary.

        Raises:
            MpdNotConnectedError: If not connected (nothing is sent).
            MpdConnectionLostError: If the connection drops first.
            MpdError: If MPD returns an ACK.
        """
        if not self.is_connected:
            raise MpdNotConnectedError(f"Not connected to MPD ({command})")

        await self._idle.interrupt()
        return await self._pipeline.enqueue(format_command(command, *args))

    # -------------------------------------------------------------------------
    # Status Commands
    # -------------------------------------------------------------------------

    async def status(self) -> MpdStatus:
        """Get current player status."""
        return parse_status(await self._command("status"))

    async def currentsong(self) -> Song | None:
        """Get the current song, or None if nothing is loaded."""
        return parse_current_song(await self._command("currentsong"))

    async def stats(self) -> MpdStats:
        """Get database statistics."""
        return parse_stats(await self._command("stats"))

    async def ping(self) -> None:
        """Ping MPD server to check connection."""
        await self._command("ping")

    # -------------------------------------------------------------------------
    # Playback Control
    # -------------------------------------------------------------------------

    async def play(self, pos: int | None = None) -> None:
        """Start playback.

        Args:
            pos: Queue position to start from, or None for current.
        """
        if pos is not None and pos >= 0:
            await self._command("play", pos)
        else:
            await self._command("play")

    async def play_id(self, song_id: int) -> None:
        """Start playback at the queue entry with the given id."""
        await self._command("playid", song_id)

    async def pause(self, state: bool | None = None) -> None:
        """Pause or resume playback.

        Args:
            state: True to pause, False to resume, None to toggle.
        """
        if state is None:
            await self._command("pause")
        else:
            await self._command("pause", "1" if state else "0")

    async def stop(self) -> None:
        """Stop playback."""
        await self._command("stop")

    async def next(self) -> None:
        """Skip to next track."""
        await self._command("next")

    async def previous(self) -> None:
        """Skip to previous track."""
        await self._command("previous")

    async def seek(self, seconds: float) -> None:
        """Seek within the current track.

        Args:
            seconds: Position in seconds; negative values seek to 0.
        """
        await self._command("seekcur", f"{max(0.0, seconds):.3f}")

    async def setvol(self, volume: int) -> None:
        """Set volume.

        Args:
            volume: Volume level, clamped to 0-100.
        """
        await self._command("setvol", max(0, min(MAX_VOLUME, volume)))

    async def crossfade(self, seconds: int) -> None:
        """Set crossfade.

        Args:
            seconds: Crossfade in seconds, clamped to 0-120.
        """
        await self._command("crossfade", max(0, min(MAX_CROSSFADE, seconds)))

    # -------------------------------------------------------------------------
    # Playback Options
    # -------------------------------------------------------------------------

    async def random(self, enabled: bool) -> None:
        """Enable or disable random mode."""
        await self._command("random", int(enabled))

    async def repeat(self, enabled: bool) -> None:
        """Enable or disable repeat mode."""
        await self._command("repeat", int(enabled))

    async def single(self, mode: SingleMode) -> None:
        """Set single mode."""
        await self._command("single", mode.value)

    async def consume(self, mode: ConsumeMode) -> None:
        """Set consume mode."""
        await self._command("consume", mode.value)

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    async def playlistinfo(self) -> list[Song]:
        """List the songs in the queue."""
        return parse_songs(await self._command("playlistinfo"))

    async def add(self, uri: str) -> None:
        """Append a file or directory to the queue."""
        await self._command("add", uri)

    async def addid(self, uri: str, pos: int | None = None) -> int:
        """Add a file to the queue.

        Args:
            uri: Song URI.
            pos: Optional queue position.

        Returns:
            Queue id of the new entry, or -1 if not reported.
        """
        if pos is None:
            response = await self._command("addid", uri)
        else:
            response = await self._command("addid", uri, pos)
        try:
            return int(response.get("Id", "-1"))
        except ValueError:
            return -1

    async def delete(self, pos: int) -> None:
        """Remove the queue entry at a position."""
        await self._command("delete", pos)

    async def deleteid(self, song_id: int) -> None:
        """Remove the queue entry with an id."""
        await self._command("deleteid", song_id)

    async def move(self, from_pos: int, to_pos: int) -> None:
        """Move a queue entry by position."""
        await self._command("move", from_pos, to_pos)

    async def moveid(self, song_id: int, to_pos: int) -> None:
        """Move a queue entry by id."""
        await self._command("moveid", song_id, to_pos)

    async def swap(self, pos1: int, pos2: int) -> None:
        """Swap two queue entries by position."""
        await self._command("swap", pos1, pos2)

    async def swapid(self, id1: int, id2: int) -> None:
        """Swap two queue entries by id."""
        await self._command("swapid", id1, id2)

    async def shuffle(self) -> None:
        """Shuffle the queue."""
        await self._command("shuffle")

    async def clear(self) -> None:
        """Clear the queue."""
        await self._command("clear")

    # -------------------------------------------------------------------------
    # Stored Playlists
    # -------------------------------------------------------------------------

    async def listplaylists(self) -> list[StoredPlaylist]:
        """List stored playlists."""
        return parse_playlists(await self._command("listplaylists"))

    async def load(self, name: str) -> None:
        """Append a stored playlist to the queue."""
        await self._command("load", name)

    async def save(self, name: str) -> None:
        """Save the queue as a stored playlist."""
        await self._command("save", name)

    async def rm(self, name: str) -> None:
        """Delete a stored playlist."""
        await self._command("rm", name)

    async def playlistadd(self, name: str, uri: str) -> None:
        """Append a song to a stored playlist."""
        await self._command("playlistadd", name, uri)

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------

    async def search(self, field: str, query: str) -> list[Song]:
        """Search the database (case-insensitive, substring).

        Args:
            field: Tag to search, e.g. "artist", "album", "any".
            query: Search text.

        Returns:
            Matching songs.
        """
        return parse_songs(await self._command("search", field, query))

    async def update(self, path: str = "") -> int:
        """Start a database update.

        Args:
            path: Optional directory to update.

        Returns:
            The update job id, or -1 if not reported.
        """
        response = await self._command("update", path) if path else await self._command("update")
        try:
            return int(response.get("updating_db", "-1"))
        except ValueError:
            return -1

    async def rescan(self, path: str = "") -> int:
        """Like update, but also rescans unmodified files."""
        response = await self._command("rescan", path) if path else await self._command("rescan")
        try:
            return int(response.get("updating_db", "-1"))
        except ValueError:
            return -1

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    async def outputs(self) -> list[MpdOutput]:
        """List audio outputs."""
        return parse_outputs(await self._command("outputs"))

    async def enableoutput(self, output_id: int) -> None:
        """Enable an audio output."""
        await self._command("enableoutput", output_id)

    async def disableoutput(self, output_id: int) -> None:
        """Disable an audio output."""
        await self._command("disableoutput", output_id)

    async def toggleoutput(self, output_id: int) -> None:
        """Toggle an audio output."""
        await self._command("toggleoutput", output_id)
