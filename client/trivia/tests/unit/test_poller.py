import asyncio
from unittest.mock import patch

from trivia.exceptions import StatusFetchError
from trivia.polling.poller import FallbackPoller
from trivia.state.reconciler import StateReconciler


class _FakeStatusApi:
    def __init__(self, *results):
        self._results = list(results)
        self.calls = 0

    async def fetch(self, session_code: str) -> dict:
        self.calls += 1
        result = self._results.pop(0) if self._results else {"isstarted": True}
        if isinstance(result, Exception):
            raise result
        return result


def _poller(api: _FakeStatusApi, sink: list, **kwargs) -> FallbackPoller:
    return FallbackPoller("ABC123", api.fetch, sink.append, **kwargs)


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout=timeout)


class TestFetchOnce:
    async def test_result_goes_to_sink(self):
        api, sink = _FakeStatusApi({"player_count": 2}), []
        poller = _poller(api, sink)
        assert await poller.fetch_once() is True
        assert sink == [{"player_count": 2}]
        assert poller.fetch_count == 1

    async def test_rate_floor(self):
        api, sink = _FakeStatusApi(), []
        poller = _poller(api, sink)
        with patch("trivia.polling.poller.time") as mock_time:
            mock_time.monotonic.return_value = 100.0
            assert await poller.fetch_once() is True
            mock_time.monotonic.return_value = 100.5
            assert await poller.fetch_once() is False
            mock_time.monotonic.return_value = 101.0
            assert await poller.fetch_once() is True
        assert api.calls == 2

    async def test_failure_sets_and_success_clears_last_error(self):
        error = StatusFetchError(session_code="ABC123", reason="HTTP 500", status_code=500)
        api, sink = _FakeStatusApi(error, {"isstarted": True}), []
        poller = _poller(api, sink, min_interval=0.0)

        await poller.fetch_once()
        assert poller.last_error == "status fetch for ABC123 failed: HTTP 500"
        assert sink == []

        await poller.fetch_once()
        assert poller.last_error is None
        assert sink == [{"isstarted": True}]

    async def test_overlapping_fetch_skipped(self):
        gate = asyncio.Event()

        async def slow_fetch(session_code):
            await gate.wait()
            return {}

        poller = FallbackPoller("ABC123", slow_fetch, lambda snapshot: None, min_interval=0.0)
        first = asyncio.create_task(poller.fetch_once())
        await asyncio.sleep(0)
        assert await poller.fetch_once() is False
        gate.set()
        assert await first is True


class TestLoop:
    async def test_interval_floor(self):
        poller = _poller(_FakeStatusApi(), [])
        poller.start(0.2)
        assert poller.interval == 1.0
        await poller.aclose()

    async def test_polls_repeatedly_and_keeps_going_after_errors(self):
        error = StatusFetchError(session_code="ABC123", reason="HTTP 502")
        api, sink = _FakeStatusApi(error, error, {"a": 1}), []
        poller = _poller(api, sink, min_interval=0.01)
        poller.start(0.01)
        await _wait_until(lambda: sink)
        assert api.calls >= 3
        assert poller.is_running
        await poller.aclose()
        assert not poller.is_running

    async def test_failing_sink_does_not_stop_the_loop(self, caplog):
        api = _FakeStatusApi({"player_count": "--1"})
        received = []

        def on_snapshot(snapshot):
            received.append(snapshot)
            if len(received) == 1:
                raise ValueError("bad snapshot")

        poller = FallbackPoller("ABC123", api.fetch, on_snapshot, min_interval=0.01)
        poller.start(0.01)
        await _wait_until(lambda: len(received) >= 2)

        assert poller.is_running
        assert poller.last_error is None
        assert "snapshot handler failed" in caplog.text
        await poller.aclose()

    async def test_malformed_snapshot_reaches_reconciler_without_killing_the_loop(self):
        reconciler = StateReconciler("ABC123")
        api = _FakeStatusApi({"player_count": "--1"}, {"player_count": "2"})
        poller = FallbackPoller("ABC123", api.fetch, reconciler.apply_snapshot, min_interval=0.01)
        poller.start(0.01)
        await _wait_until(lambda: reconciler.view.authoritative_player_count == 2)
        assert poller.is_running
        await poller.aclose()

    async def test_stop(self):
        api = _FakeStatusApi()
        poller = _poller(api, [], min_interval=0.01)
        poller.start(0.01)
        await _wait_until(lambda: api.calls >= 1)
        poller.stop()
        await asyncio.sleep(0)
        calls = api.calls
        await asyncio.sleep(0.05)
        assert api.calls == calls
        assert not poller.is_running

    async def test_stand_down_issues_one_priming_fetch_then_stays_quiet(self):
        api = _FakeStatusApi()
        poller = _poller(api, [], min_interval=0.01)
        poller.start(0.01)
        await _wait_until(lambda: api.calls >= 1)
        await asyncio.sleep(0.02)

        poller.stand_down()
        await asyncio.sleep(0)
        assert not poller.is_running
        await _wait_until(lambda: poller._prime_task.done())
        calls = api.calls
        await asyncio.sleep(0.05)
        assert api.calls == calls
        await poller.aclose()

    async def test_priming_fetch_waits_out_rate_floor(self):
        api = _FakeStatusApi()
        poller = _poller(api, [], min_interval=0.05)
        assert await poller.fetch_once()

        poller.stand_down()
        await _wait_until(lambda: poller._prime_task.done())

        assert poller._prime_task.result() is True
        assert api.calls == 2
        await poller.aclose()

    async def test_restart_replaces_running_loop(self):
        poller = _poller(_FakeStatusApi(), [], min_interval=0.01)
        poller.start(0.01)
        first = poller._task
        poller.start(0.02)
        await asyncio.sleep(0)
        assert first.cancelled() or first.done()
        assert poller.is_running
        await poller.aclose()
