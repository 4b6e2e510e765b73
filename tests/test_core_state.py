"""Tests for PlaybackState with Qt signals."""

import pytest
from pytestqt.qtbot import QtBot

from mpdctrl.api.mpd.types import (
    ConnectionState,
    MpdStatus,
    PlaybackOptions,
    PlayerState,
    Song,
)
from mpdctrl.core.state import PlaybackState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Return a fake clock."""
    return FakeClock()


@pytest.fixture
def state(clock: FakeClock) -> PlaybackState:
    """Return a fresh PlaybackState on the fake clock."""
    return PlaybackState(clock=clock)


def playing(elapsed: float | None, duration: float | None = 200.0, **kwargs) -> MpdStatus:
    return MpdStatus(state=PlayerState.PLAY, elapsed=elapsed, duration=duration, **kwargs)


class TestPlaybackStateDefaults:
    """Initial state."""

    def test_initial_state(self, state: PlaybackState) -> None:
        """Test defaults before any refresh."""
        assert state.status is None
        assert state.song is None
        assert state.player_state is PlayerState.STOP
        assert state.options == PlaybackOptions()
        assert state.volume == -1
        assert state.crossfade == 0
        assert state.elapsed == 0.0
        assert state.duration is None
        assert not state.is_connected


class TestElapsedInterpolation:
    """Elapsed time between status refreshes."""

    def test_advances_while_playing(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test elapsed advances with the clock while playing."""
        state.apply_status(playing(10.0))
        assert state.elapsed == pytest.approx(10.0)

        clock.advance(2.5)
        assert state.elapsed == pytest.approx(12.5)

    def test_clamped_to_duration(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test interpolation stops at the song duration."""
        state.apply_status(playing(195.0, duration=200.0))
        clock.advance(30)
        assert state.elapsed == pytest.approx(200.0)

    def test_monotonic_between_refreshes(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test successive reads never go backwards."""
        state.apply_status(playing(0.0))
        values = []
        for _ in range(10):
            clock.advance(0.3)
            values.append(state.elapsed)
        assert values == sorted(values)

    def test_freezes_on_pause(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test pause freezes at the server-reported position."""
        state.apply_status(playing(10.0))
        clock.advance(5)
        state.apply_status(MpdStatus(state=PlayerState.PAUSE, elapsed=15.2))

        clock.advance(100)
        assert state.elapsed == pytest.approx(15.2)

    def test_freeze_without_server_elapsed(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test pause without elapsed freezes at the interpolated value."""
        state.apply_status(playing(10.0))
        clock.advance(4)
        state.apply_status(MpdStatus(state=PlayerState.PAUSE))

        clock.advance(100)
        assert state.elapsed == pytest.approx(14.0)

    def test_stop_resets_to_zero(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test stop without elapsed reads as zero."""
        state.apply_status(playing(50.0))
        clock.advance(1)
        state.apply_status(MpdStatus(state=PlayerState.STOP))
        assert state.elapsed == 0.0

    def test_resume_reanchors(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test resuming restarts interpolation from the new server value."""
        state.apply_status(MpdStatus(state=PlayerState.PAUSE, elapsed=30.0))
        clock.advance(60)
        state.apply_status(playing(30.0))
        clock.advance(1)
        assert state.elapsed == pytest.approx(31.0)

    def test_duration_prefers_status(self, state: PlaybackState) -> None:
        """Test duration comes from status first, then the song."""
        state.apply_song(Song(file="a.flac", duration=100.0))
        assert state.duration == 100.0
        state.apply_status(playing(1.0, duration=120.0))
        assert state.duration == 120.0

    def test_disconnect_clears_anchor(self, state: PlaybackState, clock: FakeClock) -> None:
        """Test losing the connection stops interpolation."""
        state.set_connection(ConnectionState.connected())
        state.apply_status(playing(10.0))
        state.set_connection(ConnectionState.failed("reset"))
        clock.advance(10)
        assert state.elapsed == pytest.approx(10.0)


class TestPlaybackStateSignals:
    """Change signals."""

    def test_connection_signal(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test connection_changed fires on change only."""
        with qtbot.wait_signal(state.connection_changed, timeout=100) as blocker:
            state.set_connection(ConnectionState.connecting())
        assert blocker.args == [ConnectionState.connecting()]

        with qtbot.assert_not_emitted(state.connection_changed):
            state.set_connection(ConnectionState.connecting())

    def test_status_signals(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test the first status emits every detail signal."""
        status = MpdStatus(state=PlayerState.PLAY, volume=40, crossfade=3, elapsed=1.0)
        with qtbot.wait_signals(
            [
                state.player_state_changed,
                state.options_changed,
                state.volume_changed,
                state.crossfade_changed,
                state.status_changed,
            ],
            timeout=100,
        ):
            state.apply_status(status)

    def test_only_changed_signals(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test a volume-only change does not emit player state or options."""
        state.apply_status(MpdStatus(state=PlayerState.PLAY, volume=40))

        with (
            qtbot.assert_not_emitted(state.player_state_changed),
            qtbot.assert_not_emitted(state.options_changed),
            qtbot.wait_signal(state.volume_changed, timeout=100) as blocker,
        ):
            state.apply_status(MpdStatus(state=PlayerState.PLAY, volume=41))
        assert blocker.args == [41]

    def test_identical_status_silent(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test reapplying the same status emits nothing."""
        status = MpdStatus(state=PlayerState.PAUSE, volume=40, elapsed=5.0)
        state.apply_status(status)
        with qtbot.assert_not_emitted(state.status_changed):
            state.apply_status(status)

    def test_song_signal(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test song_changed fires when the song is replaced."""
        song = Song(file="a.flac", title="A")
        with qtbot.wait_signal(state.song_changed, timeout=100) as blocker:
            state.apply_song(song)
        assert blocker.args == [song]

        with qtbot.assert_not_emitted(state.song_changed):
            state.apply_song(song)


class TestAlbumChanged:
    """Album change detection for artwork."""

    def test_new_album_emits(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test the first song of an album emits album_changed."""
        song = Song(file="a/1.flac", artist="Band", album="First")
        with qtbot.wait_signal(state.album_changed, timeout=100) as blocker:
            state.apply_song(song)
        assert blocker.args == [song]

    def test_same_album_silent(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test the next track of the same album does not emit."""
        state.apply_song(Song(file="a/1.flac", artist="Band", album="First"))
        with qtbot.assert_not_emitted(state.album_changed):
            state.apply_song(Song(file="a/2.flac", artist="band", album="First "))

    def test_different_album_emits(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test switching album emits again."""
        state.apply_song(Song(file="a/1.flac", artist="Band", album="First"))
        with qtbot.wait_signal(state.album_changed, timeout=100):
            state.apply_song(Song(file="b/1.flac", artist="Band", album="Second"))

    def test_none_song_silent(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test clearing the song does not emit album_changed."""
        state.apply_song(Song(file="a/1.flac", artist="Band", album="First"))
        with qtbot.assert_not_emitted(state.album_changed):
            state.apply_song(None)

    def test_reset_forgets_album(self, state: PlaybackState, qtbot: QtBot) -> None:
        """Test the same album emits again after reset."""
        song = Song(file="a/1.flac", artist="Band", album="First")
        state.apply_song(song)
        state.reset()
        assert state.song is None
        with qtbot.wait_signal(state.album_changed, timeout=100):
            state.apply_song(song)
