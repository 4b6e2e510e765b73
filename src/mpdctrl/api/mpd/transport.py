"""Duplex byte-stream transport used by the MPD client.

The client core depends only on the ``Transport`` contract: a connect
request, a disconnect, ``send``/``receive`` coroutines, and a stream of
state-change events. ``receive`` is a one-shot read that the caller
re-arms after it has processed the returned bytes.

``StreamTransport`` is the production implementation on top of
``asyncio.open_connection``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0
READ_CHUNK_SIZE = 65536


class MpdConnectionError(Exception):
    """Transport-level failure talking to the MPD server."""


class MpdNotConnectedError(MpdConnectionError):
    """A command was issued while no connection was established."""


class MpdConnectionLostError(MpdConnectionError):
    """A pending command was abandoned because the connection went away."""


class TransportPhase(Enum):
    """Transport lifecycle phases."""

    SETUP = "setup"
    WAITING = "waiting"
    PREPARING = "preparing"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TransportEvent:
    """A transport state change, with the error for WAITING/FAILED."""

    phase: TransportPhase
    error: Exception | None = None

    @property
    def is_loss(self) -> bool:
        """Return True if the connection is gone (failed or cancelled)."""
        return self.phase in (TransportPhase.FAILED, TransportPhase.CANCELLED)


StateHandler = Callable[[TransportEvent], None]


class Transport(ABC):
    """Abstract duplex byte stream.

    Implementations report state changes through the handler installed
    with ``set_state_handler``; delivery happens on the event loop via
    ``call_soon`` so handlers never run re-entrantly inside a transport
    call.
    """

    def __init__(self) -> None:
        self._state_handler: StateHandler | None = None

    def set_state_handler(self, handler: StateHandler | None) -> None:
        """Install the state-change handler."""
        self._state_handler = handler

    def _report(self, phase: TransportPhase, error: Exception | None = None) -> None:
        """Deliver a state change to the handler on the event loop."""
        if self._state_handler is None:
            return
        event = TransportEvent(phase, error)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop running - this happens during shutdown
            logger.debug("Cannot report %s: no event loop running", phase.value)
            return
        loop.call_soon(self._state_handler, event)

    @abstractmethod
    def connect(self, host: str, port: int) -> None:
        """Start connecting; completion is reported as READY or FAILED."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close the stream; reported as CANCELLED if it was open."""

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """Write bytes.

        Raises:
            MpdConnectionError: If not connected or the write fails.
        """

    @abstractmethod
    async def receive(self) -> bytes:
        """Read the next available chunk (never empty).

        Raises:
            MpdConnectionError: If the stream is closed or the read fails.
        """


class StreamTransport(Transport):
    """TCP transport built on asyncio streams.

    Example:
        transport = StreamTransport()
        transport.set_state_handler(print)
        transport.connect("192.168.1.100", 6600)
    """

    def __init__(self, timeout: float = CONNECT_TIMEOUT) -> None:
        """Initialize the transport.

        Args:
            timeout: Connect timeout in seconds.
        """
        super().__init__()
        self._timeout = timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._active = False

    @property
    def is_open(self) -> bool:
        """Return True if the stream is open."""
        return self._writer is not None and not self._writer.is_closing()

    def connect(self, host: str, port: int) -> None:
        """Start an asynchronous connect to host:port."""
        if self._active:
            return
        self._active = True
        self._report(TransportPhase.PREPARING)
        self._connect_task = asyncio.get_running_loop().create_task(self._open(host, port))

    async def _open(self, host: str, port: int) -> None:
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._timeout,
            )
        except TimeoutError:
            self._lose(
                TransportPhase.FAILED,
                MpdConnectionError(f"Connection to {host}:{port} timed out"),
            )
            return
        except OSError as e:
            self._lose(
                TransportPhase.FAILED,
                MpdConnectionError(f"Failed to connect to {host}:{port}: {e}"),
            )
            return

        logger.info("TCP connection to %s:%d established", host, port)
        self._report(TransportPhase.READY)

    def disconnect(self) -> None:
        """Close the stream and cancel a connect in progress."""
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
        self._connect_task = None
        self._lose(TransportPhase.CANCELLED)

    def _lose(self, phase: TransportPhase, error: Exception | None = None) -> None:
        """Tear down the stream and report the terminal phase once."""
        if self._writer is not None:
            with suppress(OSError, RuntimeError):
                self._writer.close()
        self._writer = None
        self._reader = None
        if self._active:
            self._active = False
            self._report(phase, error)

    async def send(self, data: bytes) -> None:
        """Write bytes and wait for the buffer to drain."""
        if self._writer is None:
            raise MpdNotConnectedError("Not connected")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, RuntimeError) as e:
            error = MpdConnectionError(f"Send failed: {e}")
            self._lose(TransportPhase.FAILED, error)
            raise error from e

    async def receive(self) -> bytes:
        """Read the next chunk; EOF is reported as CANCELLED."""
        if self._reader is None:
            raise MpdNotConnectedError("Not connected")
        try:
            data = await self._reader.read(READ_CHUNK_SIZE)
        except OSError as e:
            error = MpdConnectionError(f"Receive failed: {e}")
            self._lose(TransportPhase.FAILED, error)
            raise error from e

        if not data:
            error = MpdConnectionError("Connection closed by server")
            self._lose(TransportPhase.CANCELLED, error)
            raise error
        return data
