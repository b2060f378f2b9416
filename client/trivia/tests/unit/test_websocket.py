from http import HTTPStatus
from urllib.parse import parse_qs, urlsplit

import pytest
from websockets.asyncio.server import serve

from trivia.messaging.types import ClientRole
from trivia.transport.protocol import SESSION_NOT_FOUND, TransportClosed, TransportError
from trivia.transport.websocket import build_session_endpoint, connect_websocket


class TestBuildSessionEndpoint:
    def test_host_endpoint(self):
        url = build_session_endpoint("wss://api.example.com", "ABC123")
        assert url == "wss://api.example.com/ws/session/ABC123?client_type=web"

    def test_player_endpoint_carries_identity(self):
        url = build_session_endpoint(
            "ws://localhost:8000",
            "ABC123",
            ClientRole.PLAYER,
            player_id="p1",
            player_name="Ada L",
            player_photo="http://img/a.png",
        )
        parts = urlsplit(url)
        assert parts.path == "/ws/session/ABC123"
        assert parse_qs(parts.query) == {
            "client_type": ["mobile"],
            "player_id": ["p1"],
            "player_name": ["Ada L"],
            "player_photo": ["http://img/a.png"],
        }

    def test_host_never_sends_player_identity(self):
        url = build_session_endpoint("ws://h", "ABC", ClientRole.HOST, player_id="p1", player_name="Ada")
        assert "player_id" not in url
        assert "player_name" not in url

    def test_session_code_is_escaped(self):
        assert "/ws/session/A%2FB?" in build_session_endpoint("ws://h", "A/B")


class TestConnectWebsocket:
    async def test_round_trip_and_remote_close(self):
        async def handler(websocket):
            message = await websocket.recv()
            await websocket.send(message)
            await websocket.close(code=4000, reason="done")

        async with serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            transport = await connect_websocket(f"ws://127.0.0.1:{port}/ws/session/X", {"X-API-Key": "k"})
            await transport.send_text('{"type":"ping"}')
            assert await transport.receive_text() == '{"type":"ping"}'
            with pytest.raises(TransportClosed) as exc_info:
                await transport.receive_text()
            assert exc_info.value.code == 4000
            assert exc_info.value.reason == "done"
            await transport.close()

    async def test_not_found_handshake_maps_to_session_not_found(self):
        def reject(connection, request):
            return connection.respond(HTTPStatus.NOT_FOUND, "no such session\n")

        async def handler(websocket):
            await websocket.wait_closed()

        async with serve(handler, "127.0.0.1", 0, process_request=reject) as server:
            port = server.sockets[0].getsockname()[1]
            with pytest.raises(TransportClosed) as exc_info:
                await connect_websocket(f"ws://127.0.0.1:{port}/ws/session/NOPE", {})
        assert exc_info.value.code == SESSION_NOT_FOUND

    async def test_other_rejections_are_transport_errors(self):
        def reject(connection, request):
            return connection.respond(HTTPStatus.FORBIDDEN, "forbidden\n")

        async def handler(websocket):
            await websocket.wait_closed()

        async with serve(handler, "127.0.0.1", 0, process_request=reject) as server:
            port = server.sockets[0].getsockname()[1]
            with pytest.raises(TransportError, match="HTTP 403"):
                await connect_websocket(f"ws://127.0.0.1:{port}/ws/session/X", {})

    async def test_refused_connection_raises_os_error(self):
        with pytest.raises(OSError):
            await connect_websocket("ws://127.0.0.1:1/ws/session/X", {})
