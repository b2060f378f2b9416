import contextlib
from collections.abc import Mapping
from http import HTTPStatus
from urllib.parse import quote, urlencode

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from trivia.messaging.types import ClientRole
from trivia.transport.protocol import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    SESSION_NOT_FOUND,
    Transport,
    TransportClosed,
    TransportError,
)

logger = structlog.get_logger()


def build_session_endpoint(
    ws_url: str,
    session_code: str,
    role: ClientRole = ClientRole.HOST,
    *,
    player_id: str | None = None,
    player_name: str | None = None,
    player_photo: str | None = None,
) -> str:
    """Build the push endpoint URL for a session.

    Player identity is only sent for the player role; the host connects
    anonymously.
    """
    params: dict[str, str] = {"client_type": role.value}
    if role is ClientRole.PLAYER and player_id:
        params["player_id"] = player_id
        if player_name:
            params["player_name"] = player_name
        if player_photo:
            params["player_photo"] = player_photo
    return f"{ws_url}/ws/session/{quote(session_code, safe='')}?{urlencode(params)}"


def _close_details(exc: ConnectionClosed) -> tuple[int, str]:
    frame = exc.rcvd or exc.sent
    if frame is None:
        return ABNORMAL_CLOSURE, "connection lost"
    return frame.code, frame.reason


class WebSocketTransport(Transport):
    def __init__(self, websocket: ClientConnection) -> None:
        self._websocket = websocket

    async def send_text(self, data: str) -> None:
        try:
            await self._websocket.send(data)
        except ConnectionClosed as e:
            raise TransportClosed(*_close_details(e)) from None

    async def receive_text(self) -> str:
        try:
            message = await self._websocket.recv()
        except ConnectionClosed as e:
            raise TransportClosed(*_close_details(e)) from None
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        with contextlib.suppress(ConnectionClosed):
            await self._websocket.close(code=code, reason=reason)


async def connect_websocket(url: str, headers: Mapping[str, str]) -> Transport:
    """Open a websocket to the session endpoint.

    Keepalive pings from the websockets library are disabled: liveness is the
    application-level ping/pong, and only an actual close or error should
    trigger reconnection. The caller enforces the open timeout.
    """
    try:
        websocket = await connect(url, additional_headers=dict(headers), open_timeout=None, ping_interval=None)
    except InvalidStatus as e:
        status = e.response.status_code
        if status == HTTPStatus.NOT_FOUND:
            raise TransportClosed(SESSION_NOT_FOUND, "session_not_found") from None
        raise TransportError(f"handshake rejected with HTTP {status}") from e
    except WebSocketException as e:
        raise TransportError(f"handshake failed: {e}") from e
    logger.debug("websocket handshake complete", url=url)
    return WebSocketTransport(websocket)
