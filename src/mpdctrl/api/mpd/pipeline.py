"""Serial command pipeline over a single transport.

Only the head of the queue is ever on the wire. The next command is
written once the codec has seen the current one's OK/ACK terminator, so
each decoded response belongs to exactly one waiting request and
completions fire in enqueue order.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from mpdctrl.api.mpd.protocol import decode, parse_ack, parse_greeting
from mpdctrl.api.mpd.transport import (
    MpdConnectionError,
    MpdNotConnectedError,
    Transport,
)
from mpdctrl.api.mpd.types import MpdResponse

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A command line waiting for its response."""

    line: str
    future: asyncio.Future[MpdResponse]


class CommandPipeline:
    """FIFO of pending commands sharing one transport.

    Example:
        pipeline = CommandPipeline(transport)
        pipeline.start()
        response = await pipeline.enqueue("status")
    """

    def __init__(
        self,
        transport: Transport,
        on_drained: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            transport: Connected (or soon connected) transport.
            on_drained: Called on the event loop whenever a response
                leaves the pipeline empty.
        """
        self._transport = transport
        self._on_drained = on_drained
        self._queue: deque[PendingRequest] = deque()
        self._in_flight: PendingRequest | None = None
        self._active = False
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._greeted = False
        self._server_version = ""
        self._read_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def is_active(self) -> bool:
        """Return True if the pipeline accepts commands."""
        return self._active

    @property
    def is_empty(self) -> bool:
        """Return True if nothing is queued or in flight."""
        return self._in_flight is None and not self._queue

    @property
    def pending_count(self) -> int:
        """Return the number of queued plus in-flight requests."""
        return len(self._queue) + (1 if self._in_flight else 0)

    @property
    def server_version(self) -> str:
        """Return the protocol version from the greeting, if seen."""
        return self._server_version

    def start(self) -> None:
        """Begin accepting commands and reading from the transport."""
        self._active = True
        self._buffer = ""
        self._decoder.reset()
        self._greeted = False
        self._server_version = ""
        if self._read_task is None or self._read_task.done():
            self._read_task = asyncio.get_running_loop().create_task(self._read_loop())

    def stop(self, error: Exception) -> None:
        """Stop reading and fail every pending request with ``error``."""
        self._active = False
        if self._read_task and not self._read_task.done():
            self._read_task.cancel()
        self._read_task = None
        self.fail_all(error)

    def enqueue(self, line: str) -> asyncio.Future[MpdResponse]:
        """Queue a command line.

        Args:
            line: Formatted command, without newline.

        Returns:
            Future resolved with the response, or failed with MpdError
            (ACK) or MpdConnectionError. When the pipeline is inactive
            the future is already failed with MpdNotConnectedError.
        """
        future: asyncio.Future[MpdResponse] = asyncio.get_running_loop().create_future()
        if not self._active:
            future.set_exception(MpdNotConnectedError("Not connected"))
            return future

        self._queue.append(PendingRequest(line, future))
        self._pump()
        return future

    def send_raw(self, line: str) -> None:
        """Write a line immediately, outside the queue.

        Used for ``noidle``, whose reply is the outstanding idle
        command's response rather than a response of its own.
        """
        if not self._active:
            return
        logger.debug("MPD raw command: %s", line)
        self._spawn(self._send_raw(line))

    async def _send_raw(self, line: str) -> None:
        try:
            await self._transport.send(f"{line}\n".encode())
        except MpdConnectionError as e:
            logger.warning("Failed to send %s: %s", line, e)

    def fail_all(self, error: Exception) -> None:
        """Fail the in-flight request and everything queued behind it."""
        pending: list[PendingRequest] = []
        if self._in_flight is not None:
            pending.append(self._in_flight)
        pending.extend(self._queue)
        self._in_flight = None
        self._queue.clear()
        self._buffer = ""

        for request in pending:
            if not request.future.done():
                request.future.set_exception(error)
        if pending:
            logger.debug("Failed %d pending MPD command(s): %s", len(pending), error)

    def feed(self, data: bytes) -> None:
        """Process received bytes, dispatching every complete response."""
        self._buffer += self._decoder.decode(data)

        if not self._greeted:
            line, sep, rest = self._buffer.partition("\n")
            if not sep:
                return
            self._greeted = True
            version = parse_greeting(line.rstrip("\r"))
            if version is not None:
                self._server_version = version
                self._buffer = rest
                logger.info("MPD server version %s", version)

        while True:
            response, self._buffer = decode(self._buffer)
            if response is None:
                break
            self._dispatch(response)

    def _dispatch(self, response: MpdResponse) -> None:
        request = self._in_flight
        if request is None:
            logger.warning("Discarding unsolicited MPD response: %r", response.raw)
            return

        self._in_flight = None
        if not request.future.done():
            if response.ok:
                request.future.set_result(response)
            else:
                request.future.set_exception(parse_ack(response.ack))

        self._pump()
        if self.is_empty and self._on_drained is not None:
            asyncio.get_running_loop().call_soon(self._on_drained)

    def _pump(self) -> None:
        """Write the queue head if nothing is in flight."""
        if self._in_flight is not None or not self._queue:
            return
        request = self._queue.popleft()
        self._in_flight = request
        logger.debug("MPD command: %s", request.line)
        self._spawn(self._write(request))

    async def _write(self, request: PendingRequest) -> None:
        try:
            await self._transport.send(f"{request.line}\n".encode())
        except MpdConnectionError as e:
            if self._in_flight is not request:
                return
            logger.warning("Failed to send %s: %s", request.line, e)
            self._in_flight = None
            if not request.future.done():
                request.future.set_exception(e)
            self._pump()
            if self.is_empty and self._on_drained is not None:
                asyncio.get_running_loop().call_soon(self._on_drained)

    async def _read_loop(self) -> None:
        """Read, drain the buffer, then re-arm the next read."""
        while self._active:
            try:
                data = await self._transport.receive()
            except MpdConnectionError as e:
                # Loss is reported through the transport's state handler
                logger.debug("MPD receive ended: %s", e)
                break
            self.feed(data)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
