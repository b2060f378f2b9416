import httpx
import pytest

from trivia.exceptions import StatusFetchError
from trivia.polling.api import StatusApiClient
from trivia.settings import SyncSettings


def _client(handler, **kwargs) -> StatusApiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StatusApiClient("http://api.test", client=http, **kwargs)


class TestFetchStatus:
    async def test_returns_json_object(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"isstarted": True, "players": []})

        client = _client(handler, api_key="secret")
        assert await client.fetch_status("ABC123") == {"isstarted": True, "players": []}
        assert str(requests[0].url) == "http://api.test/game-logic/status/ABC123"
        assert requests[0].headers["X-API-Key"] == "secret"

    async def test_no_api_key_header_when_unset(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, json={})

        await _client(handler).fetch_status("ABC123")
        assert "x-api-key" not in seen

    async def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(404, text="not found"))
        with pytest.raises(StatusFetchError) as exc_info:
            await client.fetch_status("ABC123")
        assert exc_info.value.status_code == 404
        assert exc_info.value.session_code == "ABC123"
        assert "HTTP 404" in str(exc_info.value)

    async def test_non_object_body(self):
        client = _client(lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(StatusFetchError, match="expected object, got list"):
            await client.fetch_status("ABC123")

    async def test_invalid_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(StatusFetchError, match="not valid JSON"):
            await client.fetch_status("ABC123")

    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StatusFetchError, match="request failed"):
            await _client(handler).fetch_status("ABC123")


class TestCheckHealth:
    async def test_healthy(self):
        client = _client(lambda request: httpx.Response(200, json={"status": "ok"}))
        assert await client.check_health() is True

    async def test_unhealthy_status(self):
        client = _client(lambda request: httpx.Response(503))
        assert await client.check_health() is False

    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        assert await _client(handler).check_health() is False


class TestFromSettings:
    def test_uses_settings(self):
        settings = SyncSettings(api_url="https://api.example.com/", api_key="k")
        client = StatusApiClient.from_settings(settings)
        assert client.status_url("X1") == "https://api.example.com/game-logic/status/X1"

    async def test_injected_client_is_not_closed(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))
        client = StatusApiClient("http://api.test", client=http)
        await client.aclose()
        assert not http.is_closed
        await http.aclose()
