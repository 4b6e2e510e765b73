"""Idle/notify controller.

Keeps a single ``idle`` command outstanding while the pipeline is
otherwise empty, so the server pushes subsystem changes instead of the
client polling. Before any other command is queued the idle is
interrupted with ``noidle`` and its response is drained first; the new
command therefore never goes out ahead of the idle response.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from mpdctrl.api.mpd.pipeline import CommandPipeline
from mpdctrl.api.mpd.protocol import format_command, parse_changed
from mpdctrl.api.mpd.types import MpdResponse

logger = logging.getLogger(__name__)

IDLE_SUBSYSTEMS: tuple[str, ...] = ("player", "mixer", "playlist", "options")

ChangeHandler = Callable[[list[str]], None]


class IdleController:
    """Enter, interrupt and re-enter MPD idle mode.

    Attributes:
        subsystems: Subsystems passed to ``idle``.
    """

    def __init__(
        self,
        pipeline: CommandPipeline,
        on_changed: ChangeHandler | None = None,
        subsystems: tuple[str, ...] = IDLE_SUBSYSTEMS,
    ) -> None:
        self.subsystems = subsystems
        self._pipeline = pipeline
        self._on_changed = on_changed
        self._enabled = False
        self._idling = False
        self._interrupted = False
        self._idle_future: asyncio.Future[MpdResponse] | None = None
        self._waiters = 0

    @property
    def enabled(self) -> bool:
        """Return True if idling is desired."""
        return self._enabled

    @property
    def is_idling(self) -> bool:
        """Return True while an uninterrupted idle is outstanding."""
        return self._idling

    def set_change_handler(self, handler: ChangeHandler | None) -> None:
        self._on_changed = handler

    def enable(self) -> None:
        """Allow idling and enter idle now if the pipeline is empty."""
        self._enabled = True
        self.maybe_enter()

    def disable(self) -> None:
        """Stop re-entering idle, including after an in-flight idle completes."""
        self._enabled = False

    def reset(self) -> None:
        """Forget the outstanding idle (the connection is gone)."""
        self._idling = False
        self._interrupted = False
        self._idle_future = None

    def maybe_enter(self) -> None:
        """Send ``idle`` if enabled, not already idling and nothing is pending."""
        if not self._enabled or self._idle_future is not None or self._waiters:
            return
        if not self._pipeline.is_active or not self._pipeline.is_empty:
            return

        self._idling = True
        self._interrupted = False
        future = self._pipeline.enqueue(format_command("idle", *self.subsystems))
        self._idle_future = future
        future.add_done_callback(self._on_idle_done)

    async def interrupt(self) -> None:
        """Leave idle mode and wait until the idle response has drained.

        Returns immediately when no idle is outstanding.
        """
        future = self._idle_future
        if future is None:
            return

        if self._idling:
            self._idling = False
            self._interrupted = True
            self._pipeline.send_raw("noidle")

        # Block re-entry until this caller has queued its command
        self._waiters += 1
        try:
            await asyncio.wait([future])
        finally:
            self._waiters -= 1

    def _on_idle_done(self, future: asyncio.Future[MpdResponse]) -> None:
        if self._idle_future is future:
            self._idle_future = None
        self._idling = False
        interrupted = self._interrupted
        self._interrupted = False

        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.debug("Idle ended with error: %s", error)
            return

        if interrupted:
            # Re-entry happens once the interrupting command drains
            self._dispatch_changes(future.result())
            return

        # Hold re-entry for one loop pass so refreshes queued by the
        # change handler go out before the next idle
        self._waiters += 1
        self._dispatch_changes(future.result())
        asyncio.get_running_loop().call_soon(self._resume)

    def _dispatch_changes(self, response: MpdResponse) -> None:
        changed = parse_changed(response)
        if not changed:
            return
        logger.debug("MPD subsystems changed: %s", ", ".join(changed))
        if self._on_changed is not None:
            self._on_changed(changed)

    def _resume(self) -> None:
        self._waiters -= 1
        self.maybe_enter()
