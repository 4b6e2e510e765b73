"""Controller binding the MPD client to the playback state cache.

The controller refreshes PlaybackState after connecting and whenever idle
reports a change, and provides fire-and-refresh helpers: each helper
sends its command, then re-reads status (and the current song where the
command can move it) so the cache stays consistent with side effects on
the server.

Command errors propagate to the helper's caller; failures of the
follow-up refresh are only logged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Coroutine
from typing import Any, TypeVar

from mpdctrl.api.mpd.client import MAX_CROSSFADE, MAX_VOLUME, MpdClient
from mpdctrl.api.mpd.protocol import MpdError
from mpdctrl.api.mpd.transport import MpdConnectionError
from mpdctrl.api.mpd.types import (
    ConsumeMode,
    MpdOutput,
    MpdStats,
    PlayerState,
    SingleMode,
    Song,
    StoredPlaylist,
)
from mpdctrl.core.state import PlaybackState

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_VOLUME_STEP = 5

# Subsystems whose change makes status and/or the current song stale
STATUS_SUBSYSTEMS = frozenset({"player", "mixer", "options"})
SONG_SUBSYSTEMS = frozenset({"player", "mixer", "playlist"})


class MpdController:
    """Keep PlaybackState in sync with an MpdClient.

    Example:
        controller = MpdController(client, state)
        controller.attach()
        client.connect()
        ...
        await controller.set_volume(80)
    """

    def __init__(self, client: MpdClient, state: PlaybackState) -> None:
        """Initialize the controller.

        Args:
            client: The MPD client.
            state: The playback state cache to update.
        """
        self._client = client
        self._state = state
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def client(self) -> MpdClient:
        return self._client

    @property
    def state(self) -> PlaybackState:
        return self._state

    def attach(self) -> None:
        """Install the client's event handlers."""
        self._client.set_event_handlers(
            on_ready=self._on_ready,
            on_state_change=self._state.set_connection,
            on_idle_change=self.on_idle_change,
        )

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh_status(self) -> None:
        """Fetch ``status`` and apply it to the cache."""
        self._state.apply_status(await self._client.status())

    async def refresh_current_song(self) -> None:
        """Fetch ``currentsong`` and apply it to the cache."""
        self._state.apply_song(await self._client.currentsong())

    async def refresh(self, status: bool = True, song: bool = True) -> None:
        """Refresh status and/or current song, logging failures.

        Args:
            status: Re-fetch status.
            song: Re-fetch the current song.
        """
        try:
            if status:
                await self.refresh_status()
            if song:
                await self.refresh_current_song()
        except (MpdError, MpdConnectionError) as e:
            logger.debug("MPD refresh failed: %s", e)

    def on_idle_change(self, subsystems: list[str]) -> None:
        """Schedule refreshes for subsystems reported by idle."""
        changed = set(subsystems)
        status = bool(changed & STATUS_SUBSYSTEMS)
        song = bool(changed & SONG_SUBSYSTEMS)
        if status or song:
            self._spawn(self.refresh(status=status, song=song))

    def _on_ready(self) -> None:
        self._state.reset()
        self._spawn(self._initial_refresh())

    async def _initial_refresh(self) -> None:
        await self.refresh()
        if self._client.is_connected:
            self._client.enable_idle()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, command: Awaitable[T], song: bool = True) -> T:
        """Await a command, then refresh the cache."""
        result = await command
        await self.refresh(status=True, song=song)
        return result

    # -------------------------------------------------------------------------
    # Playback
    # -------------------------------------------------------------------------

    async def play(self, pos: int | None = None) -> None:
        await self._run(self._client.play(pos))

    async def play_id(self, song_id: int) -> None:
        await self._run(self._client.play_id(song_id))

    async def pause(self) -> None:
        await self._run(self._client.pause(True))

    async def resume(self) -> None:
        await self._run(self._client.pause(False))

    async def stop(self) -> None:
        await self._run(self._client.stop())

    async def toggle(self) -> None:
        """Toggle between playing and paused; starts playback when stopped."""
        state = self._state.player_state
        if state is PlayerState.PLAY:
            await self.pause()
        elif state is PlayerState.PAUSE:
            await self.resume()
        else:
            await self.play()

    async def next(self) -> None:
        await self._run(self._client.next())

    async def previous(self) -> None:
        await self._run(self._client.previous())

    async def seek(self, seconds: float) -> None:
        await self._run(self._client.seek(seconds), song=False)

    async def set_volume(self, volume: int) -> None:
        """Set volume, clamped to 0-100."""
        await self._run(self._client.setvol(max(0, min(MAX_VOLUME, volume))), song=False)

    async def increase_volume(self, step: int = DEFAULT_VOLUME_STEP) -> None:
        """Raise volume relative to the cached value."""
        await self._step_volume(step)

    async def decrease_volume(self, step: int = DEFAULT_VOLUME_STEP) -> None:
        """Lower volume relative to the cached value."""
        await self._step_volume(-step)

    async def _step_volume(self, delta: int) -> None:
        current = self._state.volume
        if current < 0:
            logger.debug("Volume unknown (no mixer?), ignoring step of %d", delta)
            return
        await self.set_volume(current + delta)

    async def set_crossfade(self, seconds: int) -> None:
        """Set crossfade, clamped to 0-120 seconds."""
        await self._run(
            self._client.crossfade(max(0, min(MAX_CROSSFADE, seconds))), song=False
        )

    # -------------------------------------------------------------------------
    # Options
    # -------------------------------------------------------------------------

    async def set_random(self, enabled: bool) -> None:
        await self._run(self._client.random(enabled), song=False)

    async def toggle_random(self) -> None:
        await self.set_random(not self._state.options.random)

    async def set_repeat(self, enabled: bool) -> None:
        await self._run(self._client.repeat(enabled), song=False)

    async def toggle_repeat(self) -> None:
        await self.set_repeat(not self._state.options.repeat)

    async def set_single(self, mode: SingleMode) -> None:
        await self._run(self._client.single(mode), song=False)

    async def toggle_single(self) -> None:
        """Cycle single mode: off -> on -> oneshot -> off."""
        await self.set_single(self._state.options.single.next())

    async def set_consume(self, mode: ConsumeMode) -> None:
        await self._run(self._client.consume(mode), song=False)

    async def toggle_consume(self) -> None:
        """Cycle consume mode: off -> on -> off (oneshot goes to off)."""
        await self.set_consume(self._state.options.consume.next())

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    async def queue(self) -> list[Song]:
        return await self._run(self._client.playlistinfo())

    async def add(self, uri: str) -> None:
        await self._run(self._client.add(uri))

    async def add_id(self, uri: str, pos: int | None = None) -> int:
        return await self._run(self._client.addid(uri, pos))

    async def delete(self, pos: int) -> None:
        await self._run(self._client.delete(pos))

    async def delete_id(self, song_id: int) -> None:
        await self._run(self._client.deleteid(song_id))

    async def move(self, from_pos: int, to_pos: int) -> None:
        await self._run(self._client.move(from_pos, to_pos))

    async def move_id(self, song_id: int, to_pos: int) -> None:
        await self._run(self._client.moveid(song_id, to_pos))

    async def swap(self, pos1: int, pos2: int) -> None:
        await self._run(self._client.swap(pos1, pos2))

    async def swap_id(self, id1: int, id2: int) -> None:
        await self._run(self._client.swapid(id1, id2))

    async def shuffle(self) -> None:
        await self._run(self._client.shuffle())

    async def clear(self) -> None:
        await self._run(self._client.clear())

    # -------------------------------------------------------------------------
    # Stored playlists
    # -------------------------------------------------------------------------

    async def list_playlists(self) -> list[StoredPlaylist]:
        return await self._run(self._client.listplaylists(), song=False)

    async def load_playlist(self, name: str) -> None:
        await self._run(self._client.load(name))

    async def save_playlist(self, name: str) -> None:
        await self._run(self._client.save(name), song=False)

    async def delete_playlist(self, name: str) -> None:
        await self._run(self._client.rm(name), song=False)

    async def add_to_playlist(self, name: str, uri: str) -> None:
        await self._run(self._client.playlistadd(name, uri), song=False)

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------

    async def search(self, field: str, query: str) -> list[Song]:
        return await self._run(self._client.search(field, query), song=False)

    async def stats(self) -> MpdStats:
        return await self._run(self._client.stats(), song=False)

    async def update_database(self, path: str = "") -> int:
        return await self._run(self._client.update(path), song=False)

    async def rescan_database(self, path: str = "") -> int:
        return await self._run(self._client.rescan(path), song=False)

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    async def outputs(self) -> list[MpdOutput]:
        return await self._run(self._client.outputs(), song=False)

    async def enable_output(self, output_id: int) -> None:
        await self._run(self._client.enableoutput(output_id), song=False)

    async def disable_output(self, output_id: int) -> None:
        await self._run(self._client.disableoutput(output_id), song=False)

    async def toggle_output(self, output_id: int) -> None:
        await self._run(self._client.toggleoutput(output_id), song=False)
