"""
Single push connection per session with automatic recovery.

State machine:

    idle -> connecting -> open -> closing -> idle          (explicit close)
                               -> reconnecting -> connecting
    reconnecting -> disconnected                         (retry budget spent)
    any -> disconnected                                  (terminal close code)

All timers (connect timeout, backoff sleep, heartbeat) live in tasks owned by
the connection and are cancelled together by close().
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

import structlog

from trivia.messaging.codec import encode_command
from trivia.messaging.types import ClientMessageType
from trivia.transport.backoff import ReconnectBackoff
from trivia.transport.heartbeat import HeartbeatSender
from trivia.transport.protocol import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    POLICY_VIOLATION,
    SESSION_NOT_FOUND,
    TransportClosed,
    TransportError,
)
from trivia.transport.websocket import connect_websocket

if TYPE_CHECKING:
    from collections.abc import Mapping

    from trivia.settings import SyncSettings
    from trivia.transport.protocol import Connector, Transport

logger = structlog.get_logger()

# Close codes after which reconnecting cannot succeed.
TERMINAL_CLOSE_CODES = frozenset({SESSION_NOT_FOUND, POLICY_VIOLATION})


class ConnectionState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class ConnectionListener(Protocol):
    """Receiver for connection events. Called on the event loop, never concurrently."""

    def on_open(self) -> None: ...

    def on_message(self, raw: str) -> None: ...

    def on_close(self, code: int, reason: str) -> None: ...

    def on_transport_error(self, detail: str) -> None: ...

    def on_state_change(self, state: ConnectionState) -> None: ...

    def on_reconnect_scheduled(self, attempt: int, delay: float) -> None: ...


class TransportConnection:
    """Own one push connection: connect, receive, heartbeat and reconnect.

    Transport failures never raise to the caller. They are reported to the
    listener and folded into the reconnect schedule; only close() stops it.
    """

    def __init__(
        self,
        listener: ConnectionListener,
        *,
        connector: Connector | None = None,
        reconnect_base: float = 3.0,
        reconnect_cap: float = 10.0,
        max_reconnect_attempts: int = 5,
        connect_timeout: float = 10.0,
        heartbeat_interval: float = 15.0,
    ) -> None:
        self._listener = listener
        self._connector = connector or connect_websocket
        self._backoff = ReconnectBackoff(reconnect_base, reconnect_cap)
        self._max_reconnect_attempts = max_reconnect_attempts
        self._connect_timeout = connect_timeout
        self._heartbeat = HeartbeatSender(heartbeat_interval)
        self._state = ConnectionState.IDLE
        self._transport: Transport | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._closed_explicitly = False

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        listener: ConnectionListener,
        connector: Connector | None = None,
    ) -> TransportConnection:
        return cls(
            listener,
            connector=connector,
            reconnect_base=settings.reconnect_base_seconds,
            reconnect_cap=settings.reconnect_cap_seconds,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            connect_timeout=settings.connect_timeout_seconds,
            heartbeat_interval=settings.heartbeat_interval_seconds,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def heartbeat(self) -> HeartbeatSender:
        return self._heartbeat

    def open(self, endpoint: str, headers: Mapping[str, str] | None = None) -> None:
        """Start connecting in the background. Never raises for transport failures."""
        if self._run_task is not None and not self._run_task.done():
            logger.debug("open ignored, connection loop already running", state=self._state)
            return
        self._closed_explicitly = False
        self._backoff.reset()
        self._run_task = asyncio.create_task(self._run(endpoint, dict(headers or {})))

    async def send(self, text: str) -> bool:
        """Send one encoded frame. Returns False (and sends nothing) unless open."""
        transport = self._transport
        if self._state is not ConnectionState.OPEN or transport is None:
            logger.warning("send skipped, not connected", state=self._state)
            return False
        try:
            await transport.send_text(text)
        except (TransportError, OSError) as e:
            # the receive loop observes the same failure and drives recovery
            self._listener.on_transport_error(f"send failed: {e}")
            return False
        return True

    async def close(self) -> None:
        """Shut down for good: no further reconnects from this handle."""
        if self._closed_explicitly:
            return
        self._closed_explicitly = True
        was_open = self._state is ConnectionState.OPEN
        self._set_state(ConnectionState.CLOSING)

        transport, self._transport = self._transport, None
        if transport is not None:
            with contextlib.suppress(TransportError, OSError):
                await transport.close(NORMAL_CLOSURE, "client_closed")

        run_task, self._run_task = self._run_task, None
        if run_task is not None and not run_task.done():
            run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await run_task
        await self._heartbeat.stop()

        if was_open:
            self._listener.on_close(NORMAL_CLOSURE, "client_closed")
        self._set_state(ConnectionState.IDLE)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.info("connection state changed", previous=self._state, state=state)
        self._state = state
        self._listener.on_state_change(state)

    async def _run(self, url: str, headers: dict[str, str]) -> None:
        while not self._closed_explicitly:
            self._set_state(ConnectionState.CONNECTING)
            close_code = await self._connect_and_serve(url, headers)

            if self._closed_explicitly:
                return
            if close_code in TERMINAL_CLOSE_CODES:
                logger.warning("terminal close code, not reconnecting", code=close_code)
                self._set_state(ConnectionState.DISCONNECTED)
                return
            if self._backoff.attempts >= self._max_reconnect_attempts:
                logger.warning("reconnect attempts exhausted", attempts=self._backoff.attempts)
                self._set_state(ConnectionState.DISCONNECTED)
                return

            delay = self._backoff.next_delay()
            self._set_state(ConnectionState.RECONNECTING)
            logger.info("reconnect scheduled", attempt=self._backoff.attempts, delay=delay)
            self._listener.on_reconnect_scheduled(self._backoff.attempts, delay)
            await asyncio.sleep(delay)

    async def _connect_and_serve(self, url: str, headers: dict[str, str]) -> int | None:
        """Run one connection attempt to completion. Returns the close code, if any."""
        try:
            transport = await asyncio.wait_for(self._connector(url, headers), timeout=self._connect_timeout)
        except TransportClosed as e:
            self._listener.on_close(e.code, e.reason)
            return e.code
        except TimeoutError:
            self._listener.on_transport_error(f"connect timed out after {self._connect_timeout}s")
            return None
        except (TransportError, OSError) as e:
            self._listener.on_transport_error(f"connect failed: {e}")
            return None

        if self._closed_explicitly:
            with contextlib.suppress(TransportError, OSError):
                await transport.close(NORMAL_CLOSURE, "client_closed")
            return None

        self._transport = transport
        self._backoff.reset()
        self._set_state(ConnectionState.OPEN)
        self._listener.on_open()
        self._heartbeat.start(self._send_ping)
        try:
            code, reason = await self._receive_loop(transport)
        finally:
            self._transport = None
            await self._heartbeat.stop()

        if not self._closed_explicitly:
            self._listener.on_close(code, reason)
        return code

    async def _receive_loop(self, transport: Transport) -> tuple[int, str]:
        while True:
            try:
                raw = await transport.receive_text()
            except TransportClosed as e:
                return e.code, e.reason
            except (TransportError, OSError) as e:
                self._listener.on_transport_error(f"receive failed: {e}")
                return ABNORMAL_CLOSURE, str(e)
            try:
                self._listener.on_message(raw)
            except Exception:
                logger.exception("listener failed handling message")

    async def _send_ping(self) -> bool:
        return await self.send(encode_command(ClientMessageType.PING))
