"""Application-level keep-alive for an open push connection."""

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

# Sends one ping; returns False when the connection was not open.
PingSender = Callable[[], Awaitable[bool]]


class HeartbeatSender:
    """Send a ping on a fixed interval while a connection is open.

    Pong receipt is recorded for diagnostics only. A missing pong is not a
    failure signal; reconnection is driven by close and error events alone.
    """

    def __init__(self, interval: float) -> None:
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._last_ping_at: float | None = None
        self._last_pong_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_pong_at(self) -> float | None:
        """Monotonic timestamp of the last pong, or None if none arrived yet."""
        return self._last_pong_at

    @property
    def round_trip(self) -> float | None:
        """Seconds between the last ping and the pong that followed it."""
        if self._last_ping_at is None or self._last_pong_at is None:
            return None
        if self._last_pong_at < self._last_ping_at:
            return None
        return self._last_pong_at - self._last_ping_at

    def record_pong(self) -> None:
        self._last_pong_at = time.monotonic()

    def start(self, send_ping: PingSender) -> None:
        if self.is_running:
            self._task.cancel()
        self._task = asyncio.create_task(self._ping_loop(send_ping))

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _ping_loop(self, send_ping: PingSender) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._last_ping_at = time.monotonic()
            if not await send_ping():
                logger.debug("heartbeat ping not sent, connection not open")
