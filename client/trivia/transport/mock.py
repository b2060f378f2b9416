import asyncio
from collections.abc import Mapping
from typing import Any

from trivia.messaging.encoder import decode, encode
from trivia.transport.protocol import ABNORMAL_CLOSURE, NORMAL_CLOSURE, Transport, TransportClosed, TransportError


class MockTransport(Transport):
    def __init__(self) -> None:
        self._inbox: asyncio.Queue[str | TransportClosed] = asyncio.Queue()
        self._outbox: list[dict[str, Any]] = []
        self._closed = False
        self._close_code: int | None = None
        self._close_reason: str | None = None

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return self._outbox.copy()

    @property
    def sent_types(self) -> list[str]:
        return [m["type"] for m in self._outbox]

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def close_code(self) -> int | None:
        return self._close_code

    async def send_text(self, data: str) -> None:
        if self._closed:
            raise TransportClosed(ABNORMAL_CLOSURE, "transport is closed")
        # decode and store for test inspection
        self._outbox.append(decode(data))

    async def receive_text(self) -> str:
        if self._closed and self._inbox.empty():
            raise TransportClosed(self._close_code or ABNORMAL_CLOSURE, self._close_reason or "")
        item = await self._inbox.get()
        if isinstance(item, TransportClosed):
            self._closed = True
            raise item
        return item

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        self._close_code = code
        self._close_reason = reason
        self._inbox.put_nowait(TransportClosed(code, reason))

    def simulate_receive(self, data: dict[str, Any]) -> None:
        """
        Simulate the server pushing one message.
        """
        self._inbox.put_nowait(encode(data))

    def simulate_raw(self, text: str) -> None:
        self._inbox.put_nowait(text)

    def simulate_close(self, code: int, reason: str = "") -> None:
        """
        Simulate the server closing the connection.
        """
        self._close_code = code
        self._close_reason = reason
        self._inbox.put_nowait(TransportClosed(code, reason))


class MockConnector:
    """
    Connector that hands out scripted transports or failures, one per attempt.

    Each queued outcome is either a MockTransport to return or an exception to
    raise. When the script runs out, every further attempt fails.
    """

    def __init__(self, *outcomes: MockTransport | BaseException) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, dict[str, str]]] = []

    def queue(self, *outcomes: MockTransport | BaseException) -> None:
        self._outcomes.extend(outcomes)

    async def __call__(self, url: str, headers: Mapping[str, str]) -> Transport:
        self.calls.append((url, dict(headers)))
        if not self._outcomes:
            raise TransportError("no scripted outcome left")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome
