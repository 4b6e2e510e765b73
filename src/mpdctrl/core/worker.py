"""QThread worker for running the async MPD client in a Qt application.

Qt widgets must run in the main thread, but the MPD client uses asyncio.
This worker runs the asyncio event loop in a background thread, owns
every core object (client, state cache, controller, album art manager)
on that loop, and bridges events to the main thread via Qt signals.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from PySide6.QtCore import Qt, QThread, Signal

from mpdctrl.api.mpd.client import MpdClient
from mpdctrl.api.mpd.transport import Transport
from mpdctrl.api.mpd.types import ConnectionState, ConnectionStatus, Song
from mpdctrl.core.album_art import AlbumArtManager
from mpdctrl.core.config import MpdSettings
from mpdctrl.core.controller import MpdController
from mpdctrl.core.state import PlaybackState

logger = logging.getLogger(__name__)

Action = Callable[[MpdController], Awaitable[object]]


class MpdWorker(QThread):
    """Background thread worker for the MPD client.

    Example:
        worker = MpdWorker(ConfigManager().mpd_settings())
        worker.song_changed.connect(lambda song: print(song))
        worker.art_changed.connect(lambda data: show(data))
        worker.start()
        worker.toggle()
    """

    # Connection state signals
    connection_changed = Signal(object)  # ConnectionState
    connected = Signal()
    disconnected = Signal()

    # Playback signals
    status_changed = Signal(object)  # MpdStatus
    song_changed = Signal(object)  # Song | None
    art_changed = Signal(bytes)  # Empty bytes = no art

    # Error signal
    error_occurred = Signal(object)  # Exception

    def __init__(
        self,
        settings: MpdSettings | None = None,
        *,
        transport: Transport | None = None,
        art_manager: AlbumArtManager | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            settings: Connection and polling settings.
            transport: Transport override (tests).
            art_manager: Album art manager override (tests).
        """
        super().__init__()
        self._settings = settings or MpdSettings()
        self._transport = transport
        self._art_manager = art_manager
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._should_run = True

        self._client: MpdClient | None = None
        self._state: PlaybackState | None = None
        self._controller: MpdController | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def settings(self) -> MpdSettings:
        """Return the settings the worker was started with."""
        return self._settings

    @property
    def host(self) -> str:
        """Return server host."""
        return self._settings.host

    @property
    def port(self) -> int:
        """Return server port."""
        return self._settings.port

    @property
    def state(self) -> PlaybackState | None:
        """Return the playback state cache, once the worker runs."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True if client is connected."""
        return self._client is not None and self._client.is_connected

    def stop(self) -> None:
        """Signal the worker to stop (called from main thread)."""
        self._should_run = False
        if self._loop and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._request_stop)

    def _request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    # -------------------------------------------------------------------------
    # Thread-safe intents (called from main thread)
    # -------------------------------------------------------------------------

    def _submit(self, action: Action) -> None:
        """Run a controller action on the worker loop."""
        if self._loop and self._loop.is_running() and self._controller:
            asyncio.run_coroutine_threadsafe(self._safe(action), self._loop)

    async def _safe(self, action: Action) -> None:
        """Run an action with error handling."""
        if not self._controller or not self.is_connected:
            return
        try:
            await action(self._controller)
        except Exception as e:
            self.error_occurred.emit(e)

    def play(self) -> None:
        self._submit(lambda c: c.play())

    def pause(self) -> None:
        self._submit(lambda c: c.pause())

    def toggle(self) -> None:
        """Toggle play/pause."""
        self._submit(lambda c: c.toggle())

    def stop_playback(self) -> None:
        self._submit(lambda c: c.stop())

    def next(self) -> None:
        self._submit(lambda c: c.next())

    def previous(self) -> None:
        self._submit(lambda c: c.previous())

    def seek(self, seconds: float) -> None:
        self._submit(lambda c: c.seek(seconds))

    def set_volume(self, volume: int) -> None:
        """Set volume (clamped to 0-100)."""
        self._submit(lambda c: c.set_volume(volume))

    def increase_volume(self) -> None:
        self._submit(lambda c: c.increase_volume())

    def decrease_volume(self) -> None:
        self._submit(lambda c: c.decrease_volume())

    def set_crossfade(self, seconds: int) -> None:
        """Set crossfade (clamped to 0-120)."""
        self._submit(lambda c: c.set_crossfade(seconds))

    def toggle_random(self) -> None:
        self._submit(lambda c: c.toggle_random())

    def toggle_repeat(self) -> None:
        self._submit(lambda c: c.toggle_repeat())

    def toggle_single(self) -> None:
        self._submit(lambda c: c.toggle_single())

    def toggle_consume(self) -> None:
        self._submit(lambda c: c.toggle_consume())

    def request_status(self) -> None:
        """Refresh status and current song."""
        self._submit(lambda c: c.refresh())

    def reconnect(self) -> None:
        """Manual reconnect; also works after automatic retries gave up."""
        if self._loop and self._loop.is_running() and self._client:
            self._loop.call_soon_threadsafe(self._client.reconnect)

    def clear_art_cache(self) -> None:
        if self._loop and self._loop.is_running() and self._art_manager:
            self._loop.call_soon_threadsafe(self._art_manager.clear_cache)

    def set_music_directory(self, path: Path | None) -> None:
        """Change the music root used for local art (clears the art cache)."""
        if self._loop and self._loop.is_running() and self._art_manager:
            self._loop.call_soon_threadsafe(self._art_manager.set_music_directory, path)

    # -------------------------------------------------------------------------
    # Thread body
    # -------------------------------------------------------------------------

    def run(self) -> None:
        """Run the worker thread (entry point)."""
        # Create new event loop for this thread
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        try:
            self._loop.run_until_complete(self._main())
        except Exception as e:
            self.error_occurred.emit(e)
        finally:
            # Let cancelled tasks unwind before the loop goes away
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.close()
            self._loop = None
            self._client = None
            self._controller = None

    def _setup(self) -> MpdClient:
        """Create the core objects on the worker loop."""
        settings = self._settings
        client = MpdClient(
            settings.host,
            settings.port,
            settings.password,
            transport=self._transport,
            auto_reconnect=settings.auto_reconnect,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            reconnect_delay=settings.reconnect_delay,
        )
        self._client = client
        self._state = PlaybackState()
        self._controller = MpdController(client, self._state)
        self._controller.attach()
        if self._art_manager is None:
            self._art_manager = AlbumArtManager(music_directory=settings.music_directory)

        # Direct: the slots touch the worker loop, which lives in this thread
        direct = Qt.ConnectionType.DirectConnection
        self._state.connection_changed.connect(self._on_connection_changed, direct)
        self._state.status_changed.connect(self.status_changed.emit, direct)
        self._state.song_changed.connect(self.song_changed.emit, direct)
        self._state.album_changed.connect(self._on_album_changed, direct)
        return client

    async def _main(self) -> None:
        """Connect, then poll as a fallback until stopped."""
        self._stop_event = asyncio.Event()
        client = self._setup()
        client.connect()
        interval = self._settings.update_interval

        while self._should_run:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except TimeoutError:
                await self._poll()

        client.disconnect()

    async def _poll(self) -> None:
        """Refresh while connected; reconnect while disconnected."""
        if not self._client or not self._controller:
            return
        if self._client.is_connected:
            await self._controller.refresh()
        elif (
            self._settings.auto_reconnect
            and self._client.state.status is ConnectionStatus.DISCONNECTED
        ):
            logger.debug("Polling: MPD disconnected, reconnecting")
            self._client.connect()

    def _on_connection_changed(self, state: ConnectionState) -> None:
        self.connection_changed.emit(state)
        if state.is_connected:
            self.connected.emit()
        elif state.status is not ConnectionStatus.CONNECTING:
            self.disconnected.emit()

    def _on_album_changed(self, song: Song) -> None:
        if self._loop is None:
            return
        task = self._loop.create_task(self._fetch_art(song))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch_art(self, song: Song) -> None:
        """Look up art and emit it if the album is still current."""
        if self._art_manager is None:
            return
        data = await self._art_manager.get_art(song)

        current = self._state.song if self._state else None
        if current is None or AlbumArtManager.cache_key(current) != AlbumArtManager.cache_key(song):
            return
        self.art_changed.emit(data or b"")
