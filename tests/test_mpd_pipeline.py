"""Tests for the serial MPD command pipeline."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from mpdctrl.api.mpd.pipeline import CommandPipeline
from mpdctrl.api.mpd.protocol import MpdError
from mpdctrl.api.mpd.transport import (
    MpdConnectionError,
    MpdConnectionLostError,
    MpdNotConnectedError,
)

if TYPE_CHECKING:
    from conftest import FakeTransport


@pytest.fixture
def pipeline(transport: FakeTransport) -> CommandPipeline:
    """Return a pipeline over an opened fake transport (not started)."""
    transport.connect("localhost", 6600)
    return CommandPipeline(transport)


class TestPipelineOrdering:
    """Requests complete in enqueue order, one on the wire at a time."""

    @pytest.mark.asyncio
    async def test_completion_order(self, pipeline: CommandPipeline, settle) -> None:
        """Test A, B, C complete in order and D queued from B's callback comes last."""
        pipeline.start()
        order: list[str] = []
        late: list[asyncio.Future] = []

        def on_b(_: asyncio.Future) -> None:
            order.append("b")
            late.append(pipeline.enqueue("clear"))
            late[0].add_done_callback(lambda _: order.append("d"))

        fa = pipeline.enqueue("ping")
        fb = pipeline.enqueue("status")
        fc = pipeline.enqueue("stats")
        fa.add_done_callback(lambda _: order.append("a"))
        fb.add_done_callback(on_b)
        fc.add_done_callback(lambda _: order.append("c"))

        await asyncio.wait_for(asyncio.gather(fa, fb, fc), timeout=1)
        await asyncio.wait_for(late[0], timeout=1)
        await settle()

        assert order == ["a", "b", "c", "d"]
        assert fb.result().get("volume") == "50"

    @pytest.mark.asyncio
    async def test_only_head_on_wire(
        self, transport: FakeTransport, pipeline: CommandPipeline, settle
    ) -> None:
        """Test the next command is written only after the previous response."""
        transport.auto_reply = False
        pipeline.start()

        first = pipeline.enqueue("ping")
        pipeline.enqueue("status")
        pipeline.enqueue("stats")
        await settle()
        assert transport.sent == ["ping"]
        assert pipeline.pending_count == 3

        transport.reply()
        await asyncio.wait_for(first, timeout=1)
        await settle()
        assert transport.sent == ["ping", "status"]

    @pytest.mark.asyncio
    async def test_greeting_consumed(
        self, transport: FakeTransport, pipeline: CommandPipeline
    ) -> None:
        """Test the greeting sets the server version and is not a response."""
        pipeline.start()
        response = await asyncio.wait_for(pipeline.enqueue("status"), timeout=1)
        assert pipeline.server_version == "0.23.5"
        assert response.get("state") == "play"

    @pytest.mark.asyncio
    async def test_drained_callback(self, transport: FakeTransport) -> None:
        """Test on_drained runs once the queue empties."""
        transport.connect("localhost", 6600)
        drained: list[bool] = []
        pipeline = CommandPipeline(transport, on_drained=lambda: drained.append(True))
        pipeline.start()

        first = pipeline.enqueue("ping")
        second = pipeline.enqueue("ping")
        await asyncio.wait_for(asyncio.gather(first, second), timeout=1)
        await asyncio.sleep(0)
        assert drained == [True]


class TestPipelineErrors:
    """ACKs, write failures and connection loss."""

    @pytest.mark.asyncio
    async def test_ack_fails_only_its_request(
        self, transport: FakeTransport, pipeline: CommandPipeline
    ) -> None:
        """Test an ACK becomes MpdError and the queue keeps going."""
        transport.errors["play"] = "ACK [2@0] {play} Bad song index"
        pipeline.start()

        failed = pipeline.enqueue("play 99")
        after = pipeline.enqueue("status")

        with pytest.raises(MpdError) as exc_info:
            await asyncio.wait_for(failed, timeout=1)
        assert exc_info.value.code == 2
        assert exc_info.value.command == "play"
        assert (await asyncio.wait_for(after, timeout=1)).ok

    @pytest.mark.asyncio
    async def test_write_failure(
        self, transport: FakeTransport, pipeline: CommandPipeline
    ) -> None:
        """Test a failed write fails the request with the transport error."""
        pipeline.start()
        transport.send_error = MpdConnectionError("Send failed: broken pipe")

        with pytest.raises(MpdConnectionError, match="broken pipe"):
            await asyncio.wait_for(pipeline.enqueue("ping"), timeout=1)
        assert pipeline.is_empty

    @pytest.mark.asyncio
    async def test_write_failure_drains(self, transport: FakeTransport, settle) -> None:
        """Test a failed write that empties the queue reports the drain."""
        transport.connect("localhost", 6600)
        drained: list[bool] = []
        pipeline = CommandPipeline(transport, on_drained=lambda: drained.append(True))
        pipeline.start()
        transport.send_error = MpdConnectionError("Send failed: broken pipe")

        with pytest.raises(MpdConnectionError):
            await pipeline.enqueue("status")
        await settle()

        assert pipeline.is_empty
        assert drained == [True]

    @pytest.mark.asyncio
    async def test_fail_all(self, transport: FakeTransport, pipeline: CommandPipeline) -> None:
        """Test fail_all fails in-flight and queued requests."""
        transport.auto_reply = False
        pipeline.start()
        futures = [pipeline.enqueue("ping"), pipeline.enqueue("status")]

        pipeline.fail_all(MpdConnectionLostError("gone"))
        results = await asyncio.gather(*futures, return_exceptions=True)

        assert all(isinstance(r, MpdConnectionLostError) for r in results)
        assert pipeline.is_empty

    @pytest.mark.asyncio
    async def test_enqueue_when_stopped(self, pipeline: CommandPipeline) -> None:
        """Test enqueue on an inactive pipeline fails immediately."""
        future = pipeline.enqueue("status")
        assert future.done()
        with pytest.raises(MpdNotConnectedError):
            future.result()

    @pytest.mark.asyncio
    async def test_stop_fails_pending(
        self, transport: FakeTransport, pipeline: CommandPipeline
    ) -> None:
        """Test stop deactivates the pipeline and fails pending requests."""
        transport.auto_reply = False
        pipeline.start()
        future = pipeline.enqueue("ping")

        pipeline.stop(MpdConnectionLostError("Disconnected"))

        assert not pipeline.is_active
        with pytest.raises(MpdConnectionLostError):
            await future


class TestPipelineFeed:
    """Incremental decoding of received bytes."""

    @pytest.mark.asyncio
    async def test_split_chunks(self, transport: FakeTransport, pipeline: CommandPipeline) -> None:
        """Test a response split across chunks, including inside a UTF-8 sequence."""
        transport.auto_reply = False
        pipeline.start()
        future = pipeline.enqueue("currentsong")
        await asyncio.sleep(0)

        pipeline.feed(b"Title: Caf\xc3")
        assert not future.done()
        pipeline.feed(b"\xa9\nOK\n")

        response = await asyncio.wait_for(future, timeout=1)
        assert response.get("title") == "Café"

    @pytest.mark.asyncio
    async def test_unsolicited_response_discarded(self, pipeline: CommandPipeline) -> None:
        """Test a response with nothing in flight is dropped."""
        pipeline.start()
        await asyncio.sleep(0)
        pipeline.feed(b"OK\n")
        assert pipeline.is_empty
