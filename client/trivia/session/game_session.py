"""
One game session as seen by a client: the single owner of its sync machinery.

A GameSession owns exactly one push connection, one fallback poller, one
state reconciler, one command dispatcher and one lifecycle gate. Every UI
surface that shows the same session code must share one instance (see
SessionRegistry) so they all observe the same SessionView.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Self

import structlog

from shared.logging import session_log_context
from trivia.commands.dispatcher import CommandDispatcher
from trivia.lifecycle.gate import LifecycleGate, StartDecision
from trivia.messaging.codec import decode_event, encode_command
from trivia.messaging.types import (
    ClientMessageType,
    ClientRole,
    ConnectionAckData,
    ConnectionEstablishedEvent,
    PongEvent,
)
from trivia.polling.api import StatusApiClient
from trivia.polling.poller import FallbackPoller
from trivia.settings import SyncSettings
from trivia.state.reconciler import SessionViewCallback, StateReconciler
from trivia.transport.connection import ConnectionState, TransportConnection
from trivia.transport.websocket import build_session_endpoint

if TYPE_CHECKING:
    from collections.abc import Callable
    from contextlib import AbstractContextManager

    from trivia.state.models import SessionView
    from trivia.transport.protocol import Connector

logger = structlog.get_logger()

# Connection states in which push is not delivering and the poller should run.
_POLLING_STATES = frozenset({ConnectionState.CONNECTING, ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED})


class GameSession:
    """Keep one session's view in sync and expose it to the UI."""

    def __init__(
        self,
        session_code: str,
        settings: SyncSettings | None = None,
        *,
        role: ClientRole = ClientRole.HOST,
        player_id: str | None = None,
        player_name: str | None = None,
        player_photo: str | None = None,
        connector: Connector | None = None,
        status_client: StatusApiClient | None = None,
    ) -> None:
        self._session_code = session_code
        self._settings = settings or SyncSettings()
        self._role = role
        self._endpoint = build_session_endpoint(
            self._settings.resolved_ws_url,
            session_code,
            role,
            player_id=player_id,
            player_name=player_name,
            player_photo=player_photo,
        )

        self._reconciler = StateReconciler(
            session_code,
            trust_empty_roster_when_active=self._settings.trust_empty_roster_when_active,
        )
        self._connection = TransportConnection.from_settings(self._settings, self, connector)
        self._status_client = status_client or StatusApiClient.from_settings(self._settings)
        self._poller = FallbackPoller(
            session_code,
            self._status_client.fetch_status,
            self._reconciler.apply_snapshot,
            min_interval=self._settings.min_fetch_interval_seconds,
        )
        self._dispatcher = CommandDispatcher(self._connection)
        self._gate = LifecycleGate(self._dispatcher, grace_seconds=self._settings.start_grace_seconds)
        self._gate.observe(self._reconciler.view)
        self._unsubscribe_gate = self._reconciler.subscribe(self._gate.observe)

        self._background: set[asyncio.Task[Any]] = set()
        self._started = False
        self._closed = False

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def session_code(self) -> str:
        return self._session_code

    @property
    def role(self) -> ClientRole:
        return self._role

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def view(self) -> SessionView:
        return self._reconciler.view

    @property
    def commands(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def connectivity_state(self) -> ConnectionState:
        return self._connection.state

    @property
    def can_start(self) -> bool:
        return self._gate.can_start

    @property
    def poller_error(self) -> str | None:
        return self._poller.last_error

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def connection(self) -> TransportConnection:
        return self._connection

    @property
    def poller(self) -> FallbackPoller:
        return self._poller

    def subscribe(self, callback: SessionViewCallback) -> Callable[[], None]:
        return self._reconciler.subscribe(callback)

    async def request_start(self) -> StartDecision:
        return await self._gate.request_start()

    def start(self) -> None:
        """Begin syncing: poll until push is up, then let push take over."""
        if self._closed:
            raise RuntimeError(f"session {self._session_code} is closed")
        if self._started:
            return
        self._started = True
        # the tasks started here copy the binding, the caller keeps its own context
        with self._log_context():
            logger.info("session sync starting", endpoint=self._endpoint)
            self._poller.start(self._settings.poll_interval_seconds)
            self._connection.open(self._endpoint)

    async def close(self) -> None:
        """Stop every task this session owns and detach all listeners."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_gate()
        await self._connection.close()
        await self._poller.aclose()

        tasks, self._background = self._background, set()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._status_client.aclose()
        self._reconciler.clear_subscribers()
        with self._log_context():
            logger.info("session sync closed")

    def _log_context(self) -> AbstractContextManager[None]:
        return session_log_context(self._session_code, self._role.value)

    def _send_in_background(self, verb: ClientMessageType, payload: dict[str, Any] | None = None) -> None:
        task = asyncio.create_task(self._connection.send(encode_command(verb, payload)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -----------------------------------------------------------------------
    # ConnectionListener
    # -----------------------------------------------------------------------

    def on_open(self) -> None:
        logger.info("push connection open")
        if self._settings.request_stats_on_open:
            self._send_in_background(ClientMessageType.GET_SESSION_STATS)

    def on_message(self, raw: str) -> None:
        event = decode_event(raw)
        if event is None:
            return
        if isinstance(event, PongEvent):
            self._connection.heartbeat.record_pong()
        elif isinstance(event, ConnectionEstablishedEvent) and event.ack_id:
            ack = ConnectionAckData(ws_id=event.ack_id, timestamp=datetime.now(UTC).isoformat())
            self._send_in_background(ClientMessageType.CONNECTION_ACK, ack.model_dump())
        self._reconciler.apply_event(event)

    def on_close(self, code: int, reason: str) -> None:
        logger.info("push connection closed", code=code, reason=reason)

    def on_transport_error(self, detail: str) -> None:
        logger.warning("push transport error", detail=detail)

    def on_state_change(self, state: ConnectionState) -> None:
        if self._closed:
            return
        if state is ConnectionState.OPEN:
            self._poller.stand_down()
        elif state in _POLLING_STATES and not self._poller.is_running:
            self._poller.start(self._settings.poll_interval_seconds)

    def on_reconnect_scheduled(self, attempt: int, delay: float) -> None:
        logger.info("push reconnect scheduled", attempt=attempt, delay=delay)
