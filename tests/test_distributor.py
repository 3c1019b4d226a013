from __future__ import annotations

import asyncio
import logging
import threading
import time

import pytest

from conftest import make_snapshot
from inverter_agent.hardware.snapshot import EPOCH, Snapshot
from inverter_agent.services.distributor import DistributorStopped, TelemetryDistributor


class RecordingSink:
    def __init__(self) -> None:
        self.published: list[Snapshot] = []

    def publish(self, snapshot: Snapshot) -> None:
        self.published.append(snapshot)


class FailingSink:
    def __init__(self) -> None:
        self.calls = 0

    def publish(self, snapshot: Snapshot) -> None:
        self.calls += 1
        raise RuntimeError("gauge backend down")


class SlowSink:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.released = threading.Event()

    def publish(self, snapshot: Snapshot) -> None:
        time.sleep(self.delay)
        self.released.set()


async def _feed(queue: asyncio.Queue, *snapshots: Snapshot) -> None:
    for snapshot in snapshots:
        await queue.put(snapshot)
    await queue.join()


def test_initial_snapshot_is_empty():
    async def runner():
        distributor = TelemetryDistributor(asyncio.Queue(maxsize=1))
        distributor.start()
        try:
            return await distributor.latest_snapshot()
        finally:
            await distributor.stop()

    latest = asyncio.run(runner())
    assert latest.valid is False
    assert latest.timestamp == EPOCH


def test_latest_snapshot_reflects_most_recent_arrival():
    async def runner():
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        sink = RecordingSink()
        distributor = TelemetryDistributor(queue, sink, sink_timeout_seconds=None)
        distributor.start()
        await _feed(queue, *(make_snapshot(i * 10, bat_voltage=20.0 + i) for i in range(5)))
        latest = await distributor.latest_snapshot()
        await distributor.stop()
        return latest, sink

    latest, sink = asyncio.run(runner())
    assert latest.bat_voltage == 24.0
    assert [s.bat_voltage for s in sink.published] == [20.0, 21.0, 22.0, 23.0, 24.0]


def test_concurrent_readers_without_arrival_see_same_snapshot():
    async def runner():
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        distributor = TelemetryDistributor(queue)
        distributor.start()
        await _feed(queue, make_snapshot(0))
        results = await asyncio.gather(*(distributor.latest_snapshot() for _ in range(10)))
        await distributor.stop()
        return results

    results = asyncio.run(runner())
    assert all(result is results[0] for result in results)
    assert results[0].valid is True


def test_totals_reset_on_every_read():
    async def runner():
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        distributor = TelemetryDistributor(queue)
        distributor.start()
        await _feed(queue, make_snapshot(0), make_snapshot(1800), make_snapshot(3600))
        first = await distributor.collect_totals()
        second = await distributor.collect_totals()
        await _feed(queue, make_snapshot(3700))
        third = await distributor.collect_totals()
        await distributor.stop()
        return first, second, third

    first, second, third = asyncio.run(runner())
    assert first.samples == 3
    assert first.out_energy_wh == pytest.approx(460.0)
    assert second.samples == 0
    assert second.out_energy_wh == 0.0
    # The reference point was reset, so a lone snapshot integrates nothing.
    assert third.samples == 1
    assert third.out_energy_wh == 0.0


def test_invalid_arrival_updates_latest_but_not_totals_or_sink():
    async def runner():
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        sink = RecordingSink()
        distributor = TelemetryDistributor(queue, sink)
        distributor.start()
        await _feed(queue, make_snapshot(0), Snapshot.invalid(make_snapshot(5).timestamp))
        latest = await distributor.latest_snapshot()
        totals = await distributor.collect_totals()
        await distributor.stop()
        return latest, totals, sink

    latest, totals, sink = asyncio.run(runner())
    assert latest.valid is False
    assert totals.samples == 1
    assert len(sink.published) == 1


def test_cancelled_totals_request_does_not_reset():
    async def runner():
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        distributor = TelemetryDistributor(queue)
        distributor.start()
        await _feed(queue, make_snapshot(0), make_snapshot(60))

        abandoned = asyncio.ensure_future(distributor.collect_totals())
        await asyncio.sleep(0)
        abandoned.cancel()
        with pytest.raises(asyncio.CancelledError):
            await abandoned

        totals = await distributor.collect_totals()
        await distributor.stop()
        return totals

    totals = asyncio.run(runner())
    assert totals.samples == 2


def test_requests_fail_once_stopped():
    async def runner():
        distributor = TelemetryDistributor(asyncio.Queue(maxsize=1))
        distributor.start()
        assert distributor.running
        await distributor.stop()
        assert not distributor.running
        with pytest.raises(DistributorStopped):
            await distributor.latest_snapshot()
        with pytest.raises(DistributorStopped):
            await distributor.collect_totals()
        with pytest.raises(DistributorStopped):
            distributor.start()
        await distributor.stop()

    asyncio.run(runner())


def test_waiting_requests_fail_when_stopped_before_start():
    async def runner():
        distributor = TelemetryDistributor(asyncio.Queue(maxsize=1))
        pending = asyncio.ensure_future(distributor.latest_snapshot())
        pending_totals = asyncio.ensure_future(distributor.collect_totals())
        await asyncio.sleep(0)
        await distributor.stop()
        for request in (pending, pending_totals):
            with pytest.raises(DistributorStopped):
                await request

    asyncio.run(runner())


def test_failing_sink_does_not_stop_the_loop(caplog):
    async def runner():
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        sink = FailingSink()
        distributor = TelemetryDistributor(queue, sink)
        distributor.start()
        await _feed(queue, make_snapshot(0), make_snapshot(60))
        latest = await distributor.latest_snapshot()
        running = distributor.running
        await distributor.stop()
        return latest, running, sink

    with caplog.at_level(logging.WARNING, logger="inverter_agent.services.distributor"):
        latest, running, sink = asyncio.run(runner())
    assert running is True
    assert sink.calls == 2
    assert latest.timestamp == make_snapshot(60).timestamp
    assert "Metrics sink update failed" in caplog.text


def test_slow_sink_is_bounded_by_timeout(caplog):
    sink = SlowSink(delay=0.5)

    async def runner():
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        distributor = TelemetryDistributor(queue, sink, sink_timeout_seconds=0.05)
        distributor.start()
        started = time.monotonic()
        await _feed(queue, make_snapshot(0))
        elapsed = time.monotonic() - started
        latest = await distributor.latest_snapshot()
        await distributor.stop()
        return elapsed, latest

    with caplog.at_level(logging.WARNING, logger="inverter_agent.services.distributor"):
        elapsed, latest = asyncio.run(runner())
    assert elapsed < 0.4
    assert latest.valid is True
    assert "did not finish" in caplog.text
    assert sink.released.wait(2.0)
