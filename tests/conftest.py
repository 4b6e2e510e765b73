"""Test fixtures for mpdctrl tests."""

import asyncio
import base64
import os
from collections.abc import Callable

import pytest

# Headless test runs: Qt aborts without a display platform
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from mpdctrl.api.mpd.transport import (
    MpdConnectionError,
    MpdNotConnectedError,
    Transport,
    TransportPhase,
)

GREETING = "OK MPD 0.23.5"

STATUS_BODY = (
    "volume: 50\n"
    "repeat: 0\n"
    "random: 0\n"
    "single: 0\n"
    "consume: 0\n"
    "playlistlength: 2\n"
    "xfade: 0\n"
    "state: play\n"
    "song: 0\n"
    "songid: 1\n"
    "elapsed: 12.500\n"
    "duration: 240.000\n"
    "bitrate: 320\n"
    "audio: 44100:16:2\n"
)

CURRENTSONG_BODY = (
    "file: Artist/Album/01 Track.flac\n"
    "Artist: Artist\n"
    "Title: Track\n"
    "Album: Album\n"
    "duration: 240.000\n"
    "Pos: 0\n"
    "Id: 1\n"
)

# 1x1 PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6"
    "kgAAAABJRU5ErkJggg=="
)

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 32 + b"\xff\xd9"


class FakeTransport(Transport):
    """In-memory MPD server speaking the line protocol.

    Commands are answered from ``responses`` (command name to response
    body, without the OK line) or ``errors`` (command name to ACK line).
    ``idle`` stays outstanding until ``noidle`` arrives or ``notify``
    reports a change. With ``auto_reply`` off, tests answer with
    ``reply``/``push`` themselves.
    """

    def __init__(self, greeting: str = GREETING) -> None:
        super().__init__()
        self.greeting = greeting
        self.sent: list[str] = []
        self.connects: list[tuple[str, int]] = []
        self.responses: dict[str, str] = {
            "status": STATUS_BODY,
            "currentsong": CURRENTSONG_BODY,
        }
        self.errors: dict[str, str] = {}
        self.auto_reply = True
        self.refuse = False
        self.send_error: Exception | None = None
        self.is_open = False
        self._inbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._idle_pending = False
        self._changes: list[str] = []

    @property
    def idle_pending(self) -> bool:
        return self._idle_pending

    def connect(self, host: str, port: int) -> None:
        self.connects.append((host, port))
        if self.refuse:
            self._report(
                TransportPhase.FAILED,
                MpdConnectionError(f"Failed to connect to {host}:{port}: refused"),
            )
            return
        self.is_open = True
        self._inbox = asyncio.Queue()
        self._idle_pending = False
        self.push(f"{self.greeting}\n")
        self._report(TransportPhase.READY)

    def disconnect(self) -> None:
        if not self.is_open:
            return
        self._close()
        self._report(TransportPhase.CANCELLED)

    def drop(self, error: Exception | None = None) -> None:
        """Close the connection from the server side."""
        self._close()
        if error is not None:
            self._report(TransportPhase.FAILED, error)
        else:
            self._report(TransportPhase.CANCELLED)

    def _close(self) -> None:
        self.is_open = False
        self._idle_pending = False
        self._inbox.put_nowait(b"")

    async def send(self, data: bytes) -> None:
        if not self.is_open:
            raise MpdNotConnectedError("Not connected")
        if self.send_error is not None:
            raise self.send_error
        for line in data.decode().splitlines():
            self.sent.append(line)
            if self.auto_reply:
                self._answer(line)

    async def receive(self) -> bytes:
        if not self.is_open and self._inbox.empty():
            raise MpdNotConnectedError("Not connected")
        data = await self._inbox.get()
        if not data:
            raise MpdConnectionError("Connection closed by server")
        return data

    def push(self, text: str) -> None:
        """Queue raw text for the client to receive."""
        self._inbox.put_nowait(text.encode())

    def reply(self, body: str = "") -> None:
        """Answer the command on the wire with OK."""
        self.push(f"{body}OK\n")

    def notify(self, *subsystems: str) -> None:
        """Report changed subsystems to an outstanding idle."""
        self._changes.extend(subsystems)
        if self._idle_pending:
            self._idle_pending = False
            self._reply_changes()

    def _reply_changes(self) -> None:
        body = "".join(f"changed: {name}\n" for name in self._changes)
        self._changes = []
        self.reply(body)

    def _answer(self, line: str) -> None:
        name = line.split(" ", 1)[0]
        if name == "noidle":
            # Ignored by MPD unless an idle is outstanding
            if self._idle_pending:
                self._idle_pending = False
                self._reply_changes()
            return
        if name == "idle":
            self._idle_pending = True
            if self._changes:
                self._idle_pending = False
                self._reply_changes()
            return
        if name in self.errors:
            self.push(f"{self.errors[name]}\n")
            return
        self.reply(self.responses.get(name, ""))


async def _settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def transport() -> FakeTransport:
    """Return a scripted in-memory MPD server."""
    return FakeTransport()


@pytest.fixture
def settle() -> Callable[..., object]:
    """Return a coroutine function that lets pending callbacks run."""
    return _settle


@pytest.fixture
def until() -> Callable[..., object]:
    """Return a coroutine function that waits for a condition."""
    return _until


@pytest.fixture
def png_bytes() -> bytes:
    """Return a decodable 1x1 PNG."""
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes() -> bytes:
    """Return bytes with a JPEG signature."""
    return JPEG_BYTES
