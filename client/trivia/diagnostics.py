"""Connectivity self-checks for a session: configuration, API, status endpoint, push endpoint."""

from __future__ import annotations

import asyncio
import contextlib
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict

from trivia.exceptions import StatusFetchError
from trivia.polling.api import StatusApiClient
from trivia.transport.protocol import SESSION_NOT_FOUND, TransportClosed, TransportError
from trivia.transport.websocket import build_session_endpoint, connect_websocket

if TYPE_CHECKING:
    from trivia.settings import SyncSettings
    from trivia.transport.protocol import Connector

logger = structlog.get_logger()

DEFAULT_PROBE_TIMEOUT = 5.0


class DiagnosticStatus(StrEnum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class DiagnosticResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    test: str
    status: DiagnosticStatus
    message: str


def check_configuration(settings: SyncSettings) -> DiagnosticResult:
    ws_source = "set" if settings.ws_url else "derived from api_url"
    message = (
        f"API URL: {settings.api_url}, WS URL: {settings.resolved_ws_url} ({ws_source}), "
        f"API key: {'set' if settings.api_key else 'not set'}"
    )
    status = DiagnosticStatus.PASS if settings.api_key else DiagnosticStatus.WARN
    return DiagnosticResult(test="Configuration", status=status, message=message)


async def check_api_health(client: StatusApiClient) -> DiagnosticResult:
    if await client.check_health():
        return DiagnosticResult(test="API Health Check", status=DiagnosticStatus.PASS, message="GET /health returned 200")
    return DiagnosticResult(
        test="API Health Check",
        status=DiagnosticStatus.FAIL,
        message=f"GET {client.api_url}/health did not return 200",
    )


async def check_session_status(client: StatusApiClient, session_code: str) -> DiagnosticResult:
    try:
        await client.fetch_status(session_code)
    except StatusFetchError as e:
        return DiagnosticResult(test="Session Status API", status=DiagnosticStatus.FAIL, message=str(e))
    return DiagnosticResult(
        test="Session Status API",
        status=DiagnosticStatus.PASS,
        message="session found and accessible",
    )


async def check_push_endpoint(endpoint: str, connector: Connector, timeout: float) -> DiagnosticResult:
    test = "WebSocket Connection"
    try:
        transport = await asyncio.wait_for(connector(endpoint, {}), timeout=timeout)
    except TransportClosed as e:
        if e.code == SESSION_NOT_FOUND:
            return DiagnosticResult(test=test, status=DiagnosticStatus.FAIL, message="session not found")
        return DiagnosticResult(test=test, status=DiagnosticStatus.FAIL, message=str(e))
    except TimeoutError:
        return DiagnosticResult(test=test, status=DiagnosticStatus.FAIL, message=f"connection timeout ({timeout}s)")
    except (TransportError, OSError) as e:
        return DiagnosticResult(test=test, status=DiagnosticStatus.FAIL, message=f"connection failed: {e}")

    with contextlib.suppress(TransportError, OSError):
        await transport.close()
    return DiagnosticResult(test=test, status=DiagnosticStatus.PASS, message="connection successful")


async def run_diagnostics(
    settings: SyncSettings,
    session_code: str,
    *,
    status_client: StatusApiClient | None = None,
    connector: Connector | None = None,
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> list[DiagnosticResult]:
    """
    Run every check in order and collect the results.

    Checks never raise; a failing check is reported as a FAIL result and the
    remaining checks still run.
    """
    client = status_client or StatusApiClient.from_settings(settings)
    endpoint = build_session_endpoint(settings.resolved_ws_url, session_code)
    try:
        results = [
            check_configuration(settings),
            await check_api_health(client),
            await check_session_status(client, session_code),
            DiagnosticResult(test="WebSocket URL", status=DiagnosticStatus.PASS, message=endpoint),
            await check_push_endpoint(endpoint, connector or connect_websocket, probe_timeout),
        ]
    finally:
        if status_client is None:
            await client.aclose()

    for result in results:
        logger.info("diagnostic result", test=result.test, status=result.status, message=result.message)
    return results
