"""Tests for the SnapshotPoller class."""

import asyncio
import logging
import threading

import pytest

from perfmon.errors import ConfigError, QueryFailure
from perfmon.models import decode_status
from perfmon.poller import PollerConfig, SnapshotPoller


def scripted(*responses):
    """Async query returning ``responses`` in order; exceptions are raised."""
    remaining = list(responses)
    calls = []

    async def query():
        calls.append(len(calls))
        response = remaining.pop(0) if remaining else responses[-1]
        if isinstance(response, BaseException):
            raise response
        return response

    query.calls = calls
    return query


class TestPollerConfig:
    """Tests for PollerConfig."""

    def test_defaults(self):
        config = PollerConfig(query=lambda: None, interval_ms=1000)
        assert config.decode is None
        assert config.name == "poller"

    @pytest.mark.parametrize("interval", [0, -5])
    def test_interval_must_be_positive(self, interval):
        with pytest.raises(ConfigError):
            PollerConfig(query=lambda: None, interval_ms=interval)

    def test_interval_in_seconds(self):
        poller = SnapshotPoller(PollerConfig(query=lambda: None, interval_ms=65000))
        assert poller.interval == 65.0


class TestRefresh:
    """Tests for a single poll cycle."""

    @pytest.mark.asyncio
    async def test_initial_state(self):
        poller = SnapshotPoller(PollerConfig(query=scripted("x"), interval_ms=1000))
        assert poller.result is None
        assert not poller.has_result
        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_success_replaces_result_and_notifies(self):
        poller = SnapshotPoller(PollerConfig(query=scripted("s1", "s2"), interval_ms=1000))
        seen = []
        poller.on_update(seen.append)

        await poller.refresh()
        assert poller.result == "s1"
        await poller.refresh()
        assert poller.result == "s2"
        assert seen == ["s1", "s2"]

    @pytest.mark.asyncio
    async def test_failure_keeps_last_good_result(self, caplog):
        poller = SnapshotPoller(
            PollerConfig(query=scripted("s1", ConnectionError("backend down")), interval_ms=1000, name="status")
        )
        seen = []
        poller.on_update(seen.append)

        await poller.refresh()
        with caplog.at_level(logging.WARNING, logger="perfmon.poller"):
            await poller.refresh()

        assert poller.result == "s1"
        assert poller.has_result
        assert seen == ["s1"]
        assert "status" in caplog.text
        assert "backend down" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_before_first_success(self):
        poller = SnapshotPoller(PollerConfig(query=scripted(RuntimeError("boom")), interval_ms=1000))
        seen = []
        poller.on_update(seen.append)

        await poller.refresh()

        assert poller.result is None
        assert not poller.has_result
        assert seen == []

    @pytest.mark.asyncio
    async def test_failure_is_not_raised(self):
        poller = SnapshotPoller(PollerConfig(query=scripted(QueryFailure("unreachable")), interval_ms=1000))
        await poller.refresh()

    @pytest.mark.asyncio
    async def test_malformed_response_keeps_last_good_result(self, empty_status):
        poller = SnapshotPoller(
            PollerConfig(
                query=scripted(empty_status, {"garbage": True}),
                interval_ms=1000,
                decode=decode_status,
            )
        )
        await poller.refresh()
        await poller.refresh()
        assert poller.result == empty_status

    @pytest.mark.asyncio
    async def test_decode_errors_are_query_failures(self):
        def decode(raw):
            raise ValueError("bad payload")

        poller = SnapshotPoller(PollerConfig(query=scripted("s1"), interval_ms=1000, decode=decode))
        await poller.refresh()
        assert not poller.has_result

    @pytest.mark.asyncio
    async def test_sync_query_runs_off_the_event_loop_thread(self):
        threads = []

        def query():
            threads.append(threading.current_thread())
            return [1, 2, 3]

        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=1000))
        await poller.refresh()

        assert poller.result == [1, 2, 3]
        assert threads[0] is not threading.main_thread()

    @pytest.mark.asyncio
    async def test_sync_query_exception_is_handled(self):
        def query():
            raise OSError("ipc closed")

        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=1000))
        await poller.refresh()
        assert not poller.has_result

    @pytest.mark.asyncio
    async def test_out_of_order_completion_last_arrival_wins(self):
        gate = asyncio.Event()
        responses = iter(["older", "newer"])

        async def query():
            value = next(responses)
            if value == "older":
                await gate.wait()
            return value

        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=1000))
        slow = asyncio.create_task(poller.refresh())
        await asyncio.sleep(0)
        await poller.refresh()
        assert poller.result == "newer"

        gate.set()
        await slow
        assert poller.result == "older"


class TestSubscribers:
    """Tests for on_update registration."""

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        poller = SnapshotPoller(PollerConfig(query=scripted("s1", "s2"), interval_ms=1000))
        seen = []
        unsubscribe = poller.on_update(seen.append)

        await poller.refresh()
        unsubscribe()
        unsubscribe()
        await poller.refresh()

        assert seen == ["s1"]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, caplog):
        poller = SnapshotPoller(PollerConfig(query=scripted("s1"), interval_ms=1000))
        seen = []

        def broken(value):
            raise RuntimeError("render failed")

        poller.on_update(broken)
        poller.on_update(seen.append)

        with caplog.at_level(logging.ERROR, logger="perfmon.poller"):
            await poller.refresh()

        assert seen == ["s1"]
        assert poller.result == "s1"
        assert "render failed" in caplog.text

    @pytest.mark.asyncio
    async def test_dispose_drops_subscribers(self):
        poller = SnapshotPoller(PollerConfig(query=scripted("s1"), interval_ms=1000))
        seen = []
        poller.on_update(seen.append)

        poller.dispose()
        await poller.refresh()

        assert seen == []
        assert not poller.has_result


class TestLifecycle:
    """Tests for start/stop scheduling."""

    @pytest.mark.asyncio
    async def test_start_queries_immediately(self):
        query = scripted("s1")
        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=60_000))

        poller.start()
        try:
            await asyncio.sleep(0.05)
            assert poller.is_running
            assert len(query.calls) == 1
            assert poller.result == "s1"
        finally:
            poller.stop()

        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_repeats_on_interval(self):
        query = scripted("tick")
        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=20))

        poller.start()
        try:
            await asyncio.sleep(0.25)
        finally:
            poller.stop()

        assert len(query.calls) >= 3

    @pytest.mark.asyncio
    async def test_stop_cancels_future_ticks(self):
        query = scripted("tick")
        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=20))

        poller.start()
        await asyncio.sleep(0.05)
        poller.stop()
        calls = len(query.calls)
        await asyncio.sleep(0.1)

        assert len(query.calls) == calls

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        query = scripted("s1")
        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=60_000))

        poller.start()
        timer = poller._timer
        poller.start()
        try:
            assert poller._timer is timer
            await asyncio.sleep(0.05)
            assert len(query.calls) == 1
        finally:
            poller.stop()

    @pytest.mark.asyncio
    async def test_ticks_do_not_wait_for_slow_queries(self):
        gate = asyncio.Event()
        started = []

        async def query():
            started.append(1)
            await gate.wait()
            return len(started)

        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=20))
        poller.start()
        try:
            await asyncio.sleep(0.1)
            assert len(started) >= 2
        finally:
            poller.stop()
            gate.set()
            await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_result_arriving_after_stop_is_discarded(self):
        gate = asyncio.Event()

        async def query():
            await gate.wait()
            return "late"

        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=60_000))
        seen = []
        poller.on_update(seen.append)

        poller.start()
        await asyncio.sleep(0.01)
        poller.stop()
        gate.set()
        await asyncio.sleep(0.05)

        assert not poller.has_result
        assert seen == []

    @pytest.mark.asyncio
    async def test_result_from_before_restart_is_discarded(self):
        gate = asyncio.Event()
        responses = iter(["from-before-stop", "fresh"])

        async def query():
            value = next(responses)
            if value == "from-before-stop":
                await gate.wait()
            return value

        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=60_000))

        poller.start()
        await asyncio.sleep(0.01)
        poller.stop()
        poller.start()
        try:
            await asyncio.sleep(0.01)
            assert poller.result == "fresh"

            gate.set()
            await asyncio.sleep(0.01)
            assert poller.result == "fresh"
        finally:
            poller.stop()

    @pytest.mark.asyncio
    async def test_manual_refresh_after_stop_applies(self):
        poller = SnapshotPoller(PollerConfig(query=scripted("s1"), interval_ms=60_000))

        poller.start()
        poller.stop()
        await poller.refresh()

        assert poller.result == "s1"

    @pytest.mark.asyncio
    async def test_stale_read_across_scheduled_polls(self):
        query = scripted("s1", TimeoutError("slow backend"))
        poller = SnapshotPoller(PollerConfig(query=query, interval_ms=20))

        poller.start()
        try:
            await asyncio.sleep(0.15)
        finally:
            poller.stop()

        assert len(query.calls) >= 2
        assert poller.result == "s1"

    @pytest.mark.asyncio
    async def test_independent_instances(self):
        fast = SnapshotPoller(PollerConfig(query=scripted("processes"), interval_ms=60_000, name="processes"))
        slow = SnapshotPoller(PollerConfig(query=scripted(RuntimeError("down")), interval_ms=60_000, name="status"))

        fast.start()
        slow.start()
        try:
            await asyncio.sleep(0.05)
        finally:
            fast.dispose()
            slow.dispose()

        assert fast.result == "processes"
        assert not slow.has_result
