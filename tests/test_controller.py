"""Tests for MpdController."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock

import pytest

from mpdctrl.api.mpd.client import MpdClient
from mpdctrl.api.mpd.protocol import MpdError
from mpdctrl.api.mpd.transport import MpdConnectionLostError
from mpdctrl.api.mpd.types import (
    ConsumeMode,
    MpdStatus,
    PlaybackOptions,
    PlayerState,
    SingleMode,
    Song,
)
from mpdctrl.core.controller import MpdController
from mpdctrl.core.state import PlaybackState

if TYPE_CHECKING:
    from conftest import FakeTransport

IDLE_LINE = "idle player mixer playlist options"


@pytest.fixture
def client() -> Mock:
    """Return a mocked MpdClient (async methods are AsyncMocks)."""
    client = Mock(spec=MpdClient)
    client.is_connected = True
    client.status.return_value = MpdStatus(state=PlayerState.PLAY, volume=50)
    client.currentsong.return_value = Song(file="a.flac", artist="A", album="X")
    return client


@pytest.fixture
def state() -> PlaybackState:
    """Return a fresh PlaybackState."""
    return PlaybackState()


@pytest.fixture
def controller(client: Mock, state: PlaybackState) -> MpdController:
    """Return a controller over the mocked client."""
    return MpdController(client, state)


class TestControllerRefresh:
    """Refreshing the state cache."""

    @pytest.mark.asyncio
    async def test_refresh_applies_results(
        self, client: Mock, state: PlaybackState, controller: MpdController
    ) -> None:
        """Test refresh applies status and current song."""
        await controller.refresh()
        assert state.player_state is PlayerState.PLAY
        assert state.volume == 50
        assert state.song is not None
        assert state.song.file == "a.flac"

    @pytest.mark.asyncio
    async def test_refresh_logs_failures(self, client: Mock, controller: MpdController) -> None:
        """Test refresh swallows MPD and connection errors."""
        client.status.side_effect = MpdConnectionLostError("gone")
        await controller.refresh()
        client.currentsong.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_status_propagates(
        self, client: Mock, controller: MpdController
    ) -> None:
        """Test the single-item refresh propagates errors."""
        client.status.side_effect = MpdError(5, "status", "boom")
        with pytest.raises(MpdError):
            await controller.refresh_status()

    @pytest.mark.asyncio
    async def test_idle_dispatch(self, client: Mock, controller: MpdController, settle) -> None:
        """Test idle subsystems map to status and/or song refreshes."""
        controller.on_idle_change(["options"])
        await settle()
        assert client.status.await_count == 1
        client.currentsong.assert_not_awaited()

        controller.on_idle_change(["playlist"])
        await settle()
        assert client.status.await_count == 1
        assert client.currentsong.await_count == 1

        controller.on_idle_change(["database", "stored_playlist"])
        await settle()
        assert client.status.await_count == 1
        assert client.currentsong.await_count == 1

    @pytest.mark.asyncio
    async def test_ready_resets_and_enables_idle(
        self, client: Mock, state: PlaybackState, controller: MpdController, settle
    ) -> None:
        """Test the ready handler refreshes, then enables idle."""
        state.apply_status(MpdStatus(state=PlayerState.PAUSE, volume=10))
        controller._on_ready()
        await settle()

        assert state.volume == 50
        client.enable_idle.assert_called_once_with()

    def test_attach_installs_handlers(self, client: Mock, controller: MpdController) -> None:
        """Test attach registers the client callbacks."""
        controller.attach()
        kwargs = client.set_event_handlers.call_args.kwargs
        assert kwargs["on_idle_change"] == controller.on_idle_change
        assert kwargs["on_state_change"] == controller.state.set_connection


class TestControllerCommands:
    """Fire-and-refresh helpers."""

    @pytest.mark.asyncio
    async def test_set_volume_clamped(self, client: Mock, controller: MpdController) -> None:
        """Test volume is clamped and status refreshed."""
        await controller.set_volume(150)
        client.setvol.assert_awaited_once_with(100)
        client.status.assert_awaited_once()
        client.currentsong.assert_not_awaited()

        await controller.set_volume(-10)
        client.setvol.assert_awaited_with(0)

    @pytest.mark.asyncio
    async def test_set_crossfade_clamped(self, client: Mock, controller: MpdController) -> None:
        """Test crossfade is clamped to 0-120."""
        await controller.set_crossfade(500)
        client.crossfade.assert_awaited_once_with(120)
        await controller.set_crossfade(-1)
        client.crossfade.assert_awaited_with(0)

    @pytest.mark.asyncio
    async def test_volume_steps(
        self, client: Mock, state: PlaybackState, controller: MpdController
    ) -> None:
        """Test relative volume changes use the cached volume."""
        state.apply_status(MpdStatus(volume=98))
        await controller.increase_volume()
        client.setvol.assert_awaited_once_with(100)

        state.apply_status(MpdStatus(volume=3))
        await controller.decrease_volume()
        client.setvol.assert_awaited_with(0)

    @pytest.mark.asyncio
    async def test_volume_step_without_mixer(
        self, client: Mock, state: PlaybackState, controller: MpdController
    ) -> None:
        """Test relative volume is ignored when the volume is unknown."""
        state.apply_status(MpdStatus(volume=-1))
        await controller.increase_volume()
        client.setvol.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("player_state", "expected"),
        [
            (PlayerState.PLAY, "pause_true"),
            (PlayerState.PAUSE, "pause_false"),
            (PlayerState.STOP, "play"),
        ],
    )
    async def test_toggle(
        self,
        client: Mock,
        state: PlaybackState,
        controller: MpdController,
        player_state: PlayerState,
        expected: str,
    ) -> None:
        """Test toggle pauses, resumes or starts playback."""
        state.apply_status(MpdStatus(state=player_state))
        await controller.toggle()

        if expected == "play":
            client.play.assert_awaited_once_with(None)
            client.pause.assert_not_awaited()
        else:
            client.pause.assert_awaited_once_with(expected == "pause_true")
            client.play.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_toggle_options(
        self, client: Mock, state: PlaybackState, controller: MpdController
    ) -> None:
        """Test option toggles use the cached options."""
        status = MpdStatus(
            options=PlaybackOptions(
                random=True,
                repeat=False,
                single=SingleMode.ON,
                consume=ConsumeMode.ONESHOT,
            )
        )
        # Server keeps reporting the same options after each command
        client.status.return_value = status
        state.apply_status(status)

        await controller.toggle_random()
        await controller.toggle_repeat()
        await controller.toggle_single()
        await controller.toggle_consume()

        client.random.assert_awaited_once_with(False)
        client.repeat.assert_awaited_once_with(True)
        client.single.assert_awaited_once_with(SingleMode.ONESHOT)
        client.consume.assert_awaited_once_with(ConsumeMode.OFF)

    @pytest.mark.asyncio
    async def test_command_error_propagates(self, client: Mock, controller: MpdController) -> None:
        """Test a failing command raises and skips the refresh."""
        client.next.side_effect = MpdError(55, "next", "Not playing")
        with pytest.raises(MpdError):
            await controller.next()
        client.status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_error_after_command_logged(
        self, client: Mock, controller: MpdController
    ) -> None:
        """Test a failing follow-up refresh does not raise."""
        client.status.side_effect = MpdConnectionLostError("gone")
        await controller.stop()
        client.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_returning_helpers(self, client: Mock, controller: MpdController) -> None:
        """Test helpers pass through the command's result."""
        client.addid.return_value = 12
        client.update.return_value = 3
        assert await controller.add_id("a.flac") == 12
        assert await controller.update_database() == 3
        client.addid.assert_awaited_once_with("a.flac", None)


class TestControllerIntegration:
    """Controller over a real client and the fake server."""

    @pytest.mark.asyncio
    async def test_cold_connect_wire_order(self, transport: FakeTransport, until, qapp) -> None:
        """Test a cold connect sends status, currentsong, then idle."""
        client = MpdClient("localhost", transport=transport, auto_reconnect=False)
        state = PlaybackState()
        MpdController(client, state).attach()

        client.connect()
        await until(lambda: client.is_idling)

        assert transport.sent == ["status", "currentsong", IDLE_LINE]
        assert state.is_connected
        assert state.player_state is PlayerState.PLAY
        assert state.song is not None
        assert state.song.title == "Track"

    @pytest.mark.asyncio
    async def test_idle_change_refreshes(self, transport: FakeTransport, until, qapp) -> None:
        """Test a mixer change re-reads status and song, then idles again."""
        client = MpdClient("localhost", transport=transport, auto_reconnect=False)
        state = PlaybackState()
        MpdController(client, state).attach()
        client.connect()
        await until(lambda: client.is_idling)

        transport.responses["status"] = transport.responses["status"].replace(
            "volume: 50", "volume: 80"
        )
        transport.notify("mixer")
        await until(lambda: state.volume == 80 and client.is_idling)

        assert transport.sent[3:] == ["status", "currentsong", IDLE_LINE]
