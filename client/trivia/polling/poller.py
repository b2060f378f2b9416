"""Pull-based fallback while the push connection is not open."""

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from trivia.exceptions import StatusFetchError

logger = structlog.get_logger()

# No two fetches closer together than this, whoever asks for them.
MIN_FETCH_INTERVAL = 1.0

StatusFetcher = Callable[[str], Awaitable[dict[str, Any]]]
SnapshotSink = Callable[[dict[str, Any]], object]


class FallbackPoller:
    """
    Periodically fetch the authoritative snapshot and hand it to a sink.

    The loop and fetch_once() share one rate floor, so a priming fetch right
    after the loop stops cannot double up with its last tick. Failures are
    recorded in ``last_error`` and retried on the next tick. Neither they nor
    a failing sink stop the loop.
    """

    def __init__(
        self,
        session_code: str,
        fetch: StatusFetcher,
        on_snapshot: SnapshotSink,
        *,
        min_interval: float = MIN_FETCH_INTERVAL,
    ) -> None:
        self._session_code = session_code
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self._min_interval = min_interval
        self._interval = min_interval
        self._task: asyncio.Task[None] | None = None
        self._prime_task: asyncio.Task[bool] | None = None
        self._last_fetch_at: float | None = None
        self._in_flight = False
        self._last_error: str | None = None
        self._fetch_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def fetch_count(self) -> int:
        """Number of fetches actually issued."""
        return self._fetch_count

    def start(self, interval: float) -> None:
        """Start polling every ``max(interval, min_interval)`` seconds. Restarts if running."""
        self._interval = max(interval, self._min_interval)
        if self.is_running:
            self._task.cancel()
        logger.info("fallback polling started", interval=self._interval)
        self._task = asyncio.create_task(self._poll_loop())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("fallback polling stopped")

    def stand_down(self) -> None:
        """Stop the loop and issue one priming fetch; called when push takes over."""
        self.stop()
        if self._prime_task is None or self._prime_task.done():
            self._prime_task = asyncio.create_task(self._prime())

    async def aclose(self) -> None:
        """Stop everything and wait for owned tasks to finish cancelling."""
        tasks = [t for t in (self._task, self._prime_task) if t is not None]
        self._task = self._prime_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def fetch_once(self) -> bool:
        """
        Fetch one snapshot now unless the rate floor forbids it.

        Returns:
            True if a fetch was issued (whether or not it succeeded)

        """
        now = time.monotonic()
        if self._in_flight:
            logger.debug("fetch skipped, previous fetch still running")
            return False
        if self._last_fetch_at is not None and now - self._last_fetch_at < self._min_interval:
            logger.debug("fetch skipped, rate floor", since_last=now - self._last_fetch_at)
            return False

        self._last_fetch_at = now
        self._in_flight = True
        self._fetch_count += 1
        try:
            snapshot = await self._fetch(self._session_code)
        except StatusFetchError as e:
            if self._last_error != str(e):
                logger.warning("status fetch failed", error=str(e), status_code=e.status_code)
            self._last_error = str(e)
            return True
        finally:
            self._in_flight = False

        self._last_error = None
        try:
            self._on_snapshot(snapshot)
        except Exception:
            logger.exception("snapshot handler failed")
        return True

    async def _prime(self) -> bool:
        # wait out the rate floor rather than skipping the priming fetch
        while self._last_fetch_at is not None:
            remaining = self._min_interval - (time.monotonic() - self._last_fetch_at)
            if remaining <= 0:
                break
            await asyncio.sleep(remaining)
        return await self.fetch_once()

    async def _poll_loop(self) -> None:
        while True:
            await self.fetch_once()
            await asyncio.sleep(self._interval)
