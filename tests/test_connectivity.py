"""Tests for the pub/sub channel and the connectivity monitor."""

import asyncio

import httpx
import pytest

from conftest import FakeProbe
from waypoint.monitor.channel import Channel
from waypoint.monitor.connectivity import (
    ConnectivityMonitor,
    ConnectivityState,
    HttpProbe,
)

ONLINE = ConnectivityState.ONLINE
OFFLINE = ConnectivityState.OFFLINE


class RaisingProbe:
    name = "broken"

    async def check(self) -> bool:
        raise RuntimeError("probe exploded")


class TestChannel:
    @pytest.mark.asyncio
    async def test_every_subscriber_gets_every_item(self):
        """Fan-out delivers all items, in order, to each subscriber."""
        channel: Channel[int] = Channel()
        a = channel.subscribe()
        b = channel.subscribe()

        for i in range(3):
            channel.publish(i)

        assert [await a.get() for _ in range(3)] == [0, 1, 2]
        assert [await b.get() for _ in range(3)] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_unsubscribe_affects_only_that_subscriber(self):
        channel: Channel[str] = Channel()
        leaving = channel.subscribe()
        staying = channel.subscribe()

        leaving.close()
        channel.publish("hello")

        assert channel.subscriber_count == 1
        assert await staying.get() == "hello"
        with pytest.raises(StopAsyncIteration):
            await leaving.get()

    @pytest.mark.asyncio
    async def test_close_ends_async_iteration(self):
        channel: Channel[int] = Channel()
        received = []

        async def consume():
            async with channel.subscribe() as sub:
                async for item in sub:
                    received.append(item)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        channel.publish(1)
        channel.publish(2)
        channel.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert received == [1, 2]
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_late_subscriber_misses_earlier_items(self):
        channel: Channel[int] = Channel()
        channel.publish(1)
        sub = channel.subscribe()
        channel.publish(2)
        assert await sub.get() == 2


class TestConnectivityMonitor:
    @pytest.mark.asyncio
    async def test_first_read_runs_exactly_one_check(self):
        """current_state() probes once, then serves the cached state."""
        probe = FakeProbe(reachable=True)
        monitor = ConnectivityMonitor([probe])

        states = await asyncio.gather(*(monitor.current_state() for _ in range(5)))

        assert states == [ONLINE] * 5
        assert probe.calls == 1
        assert await monitor.current_state() is ONLINE
        assert probe.calls == 1

    def test_last_known_is_a_snapshot_without_checks(self):
        probe = FakeProbe(reachable=True)
        monitor = ConnectivityMonitor([probe])

        assert monitor.last_known is None
        assert probe.calls == 0

        monitor.report(OFFLINE)
        assert monitor.last_known is OFFLINE
        assert probe.calls == 0

    @pytest.mark.asyncio
    async def test_any_reachable_probe_means_online(self):
        monitor = ConnectivityMonitor(
            [FakeProbe(False, "cellular"), FakeProbe(True, "wifi")]
        )
        assert await monitor.refresh() is ONLINE

    @pytest.mark.asyncio
    async def test_no_reachable_probe_means_offline(self):
        monitor = ConnectivityMonitor(
            [FakeProbe(False, "cellular"), RaisingProbe()]
        )
        assert await monitor.refresh() is OFFLINE

    @pytest.mark.asyncio
    async def test_transitions_published_in_order(self):
        probe = FakeProbe(reachable=False)
        monitor = ConnectivityMonitor([probe])
        sub = monitor.subscribe()

        await monitor.refresh()
        probe.reachable = True
        await monitor.refresh()
        await monitor.refresh()  # unchanged, not published
        probe.reachable = False
        await monitor.refresh()

        received = [await sub.get() for _ in range(3)]
        assert received == [OFFLINE, ONLINE, OFFLINE]
        assert sub._queue.empty()

    @pytest.mark.asyncio
    async def test_report_may_deliver_duplicates(self):
        monitor = ConnectivityMonitor([])
        sub = monitor.subscribe()

        monitor.report(ONLINE)
        monitor.report(ONLINE)

        assert [await sub.get(), await sub.get()] == [ONLINE, ONLINE]
        assert monitor.last_known is ONLINE

    @pytest.mark.asyncio
    async def test_polling_detects_change(self):
        probe = FakeProbe(reachable=False)
        monitor = ConnectivityMonitor([probe], poll_interval=0.01)
        sub = monitor.subscribe()

        await monitor.start()
        assert await asyncio.wait_for(sub.get(), 1.0) is OFFLINE
        probe.reachable = True
        assert await asyncio.wait_for(sub.get(), 1.0) is ONLINE
        await monitor.stop()

        with pytest.raises(StopAsyncIteration):
            await sub.get()


class TestHttpProbe:
    @pytest.mark.asyncio
    async def test_reachable_on_any_answer_below_500(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        probe = HttpProbe("http://server.test/health", transport=transport)
        assert await probe.check() is True

    @pytest.mark.asyncio
    async def test_unreachable_on_server_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        probe = HttpProbe("http://server.test/health", transport=transport)
        assert await probe.check() is False

    @pytest.mark.asyncio
    async def test_unreachable_on_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("no route to host", request=request)

        probe = HttpProbe("http://server.test/health", transport=httpx.MockTransport(handler))
        assert await probe.check() is False
