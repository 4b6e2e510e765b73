"""Connection lifecycle and reconnect policy.

The supervisor is the only component that changes ``ConnectionState``.
It turns transport events into connected/failed/disconnected, schedules
bounded reconnects with a growing delay, and tells the client when the
connection becomes usable or is lost.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable

from mpdctrl.api.mpd.transport import (
    MpdConnectionLostError,
    Transport,
    TransportEvent,
    TransportPhase,
)
from mpdctrl.api.mpd.types import ConnectionState, ConnectionStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RECONNECT_DELAY = 2.0  # seconds, multiplied by the attempt number

ReadyHandler = Callable[[], None]
LostHandler = Callable[[Exception], None]
StateChangeHandler = Callable[[ConnectionState], None]


class ConnectionSupervisor:
    """Own the transport's connect/disconnect lifecycle.

    Example:
        supervisor = ConnectionSupervisor(StreamTransport(), "localhost", 6600)
        supervisor.set_event_handlers(on_ready=start_session)
        supervisor.connect()
    """

    def __init__(
        self,
        transport: Transport,
        host: str,
        port: int,
        *,
        auto_reconnect: bool = True,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_RECONNECT_DELAY,
    ) -> None:
        """Initialize the supervisor.

        Args:
            transport: Transport to drive.
            host: MPD server hostname or IP.
            port: MPD server port.
            auto_reconnect: Retry automatically after a failure.
            max_attempts: Consecutive failures after which retrying stops.
            base_delay: Delay unit in seconds for the backoff.
        """
        self.host = host
        self.port = port
        self.auto_reconnect = auto_reconnect
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay

        self._transport = transport
        self._state = ConnectionState.disconnected()
        self._attempts = 0
        self._generation = 0
        self._timer: asyncio.TimerHandle | None = None

        self._on_ready: ReadyHandler | None = None
        self._on_lost: LostHandler | None = None
        self._on_state_change: StateChangeHandler | None = None

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def attempts(self) -> int:
        """Return the number of consecutive failures since the last success."""
        return self._attempts

    @property
    def reconnect_pending(self) -> bool:
        """Return True if an automatic reconnect is scheduled."""
        return self._timer is not None

    def set_event_handlers(
        self,
        on_ready: ReadyHandler | None = None,
        on_lost: LostHandler | None = None,
        on_state_change: StateChangeHandler | None = None,
    ) -> None:
        """Set lifecycle handlers.

        Args:
            on_ready: Called after the state becomes connected.
            on_lost: Called with the error to fail pending work with.
            on_state_change: Called with every new ConnectionState.
        """
        self._on_ready = on_ready
        self._on_lost = on_lost
        self._on_state_change = on_state_change

    def connect(self) -> None:
        """Start connecting. No-op while connected or connecting."""
        if self._state.status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            return

        self._cancel_timer()
        self._generation += 1
        self._transport.set_state_handler(
            functools.partial(self._on_transport_event, self._generation)
        )
        self._set_state(ConnectionState.connecting())
        logger.info("Connecting to MPD at %s:%d", self.host, self.port)
        self._transport.connect(self.host, self.port)

    def reconnect(self) -> None:
        """Manual reconnect: resets the retry budget, then connects."""
        self._attempts = 0
        self.connect()

    def disconnect(self) -> None:
        """Disconnect unconditionally and cancel any pending reconnect."""
        self._cancel_timer()
        # Events from the closing transport belong to a stale generation
        self._generation += 1
        self._set_state(ConnectionState.disconnected())
        self._transport.disconnect()
        if self._on_lost is not None:
            self._on_lost(MpdConnectionLostError("Disconnected"))
        logger.info("Disconnected from MPD")

    def _on_transport_event(self, generation: int, event: TransportEvent) -> None:
        if generation != self._generation:
            return

        status = self._state.status
        if event.phase is TransportPhase.READY:
            if status is not ConnectionStatus.CONNECTING:
                return
            self._attempts = 0
            self._set_state(ConnectionState.connected())
            logger.info("Connected to MPD at %s:%d", self.host, self.port)
            if self._on_ready is not None:
                self._on_ready()
            return

        if event.phase is TransportPhase.WAITING:
            logger.debug("Transport waiting: %s", event.error)
            return

        if not event.is_loss:
            return
        if status not in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            return

        reason = str(event.error) if event.error else "Connection closed"
        if event.phase is TransportPhase.FAILED:
            logger.warning("MPD connection failed: %s", reason)
            self._set_state(ConnectionState.failed(reason))
        else:
            logger.info("MPD connection closed: %s", reason)
            self._set_state(ConnectionState.disconnected())

        if self._on_lost is not None:
            self._on_lost(MpdConnectionLostError(reason))
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self.auto_reconnect:
            return

        self._attempts += 1
        if self._attempts >= self.max_attempts:
            logger.warning(
                "Giving up on MPD at %s:%d after %d attempts",
                self.host,
                self.port,
                self._attempts,
            )
            return

        delay = min(self._attempts, self.max_attempts) * self.base_delay
        logger.info("Reconnecting to MPD in %.1fs (attempt %d)", delay, self._attempts + 1)
        self._timer = asyncio.get_running_loop().call_later(delay, self._retry)

    def _retry(self) -> None:
        self._timer = None
        self.connect()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)
