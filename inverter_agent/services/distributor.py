"""Fan a single telemetry stream out to on-demand readers and a metrics sink.

One task owns the latest snapshot and the running totals. Readers never touch
that state directly: each request carries a reply future that the loop answers
with whatever is current when it services the request.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, Optional, Protocol

from inverter_agent.hardware.snapshot import Snapshot
from inverter_agent.services.totals import RunningTotals, reset_totals, update_totals
from inverter_agent.utils.select import Selector

logger = logging.getLogger(__name__)


class DistributorStopped(RuntimeError):
    """Raised to readers whose request cannot be served because the loop stopped."""


class MetricsSink(Protocol):
    def publish(self, snapshot: Snapshot) -> None:
        ...


class TelemetryDistributor:
    def __init__(
        self,
        incoming: asyncio.Queue[Snapshot],
        sink: Optional[MetricsSink] = None,
        *,
        sink_timeout_seconds: Optional[float] = 1.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.incoming = incoming
        self.sink = sink
        self.sink_timeout_seconds = sink_timeout_seconds
        self._rng = rng
        self._latest = Snapshot.empty()
        self._totals = RunningTotals()
        self._snapshot_requests: asyncio.Queue[asyncio.Future] = asyncio.Queue()
        self._totals_requests: asyncio.Queue[asyncio.Future] = asyncio.Queue()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        if self._stop.is_set():
            raise DistributorStopped("telemetry distributor cannot be restarted")
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="telemetry-distributor")

    async def latest_snapshot(self) -> Snapshot:
        return await self._request(self._snapshot_requests)

    async def collect_totals(self) -> RunningTotals:
        """Return the totals accumulated since the previous call and reset them."""

        return await self._request(self._totals_requests)

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
        else:
            self._fail_pending({})

    async def _request(self, requests: asyncio.Queue[asyncio.Future]):
        if self._stop.is_set():
            raise DistributorStopped("telemetry distributor is stopped")
        reply = asyncio.get_running_loop().create_future()
        requests.put_nowait(reply)
        return await reply

    async def _run(self) -> None:
        selector: Selector[str] = Selector(
            {
                "incoming": self.incoming.get,
                "snapshot": self._snapshot_requests.get,
                "totals": self._totals_requests.get,
                "stop": self._stop.wait,
            },
            rng=self._rng,
        )
        try:
            while True:
                key, item = await selector.select()
                if key == "stop":
                    break
                if key == "incoming":
                    try:
                        await self._on_arrival(item)  # type: ignore[arg-type]
                    finally:
                        self.incoming.task_done()
                elif key == "snapshot":
                    self._reply(item, self._latest)  # type: ignore[arg-type]
                elif key == "totals":
                    self._serve_totals(item)  # type: ignore[arg-type]
        finally:
            leftovers = selector.ready_results()
            await selector.aclose()
            if "incoming" in leftovers:
                # Taken off the queue but never processed.
                self.incoming.task_done()
            self._fail_pending(leftovers)
            logger.info("Telemetry distributor stopped")

    async def _on_arrival(self, snapshot: Snapshot) -> None:
        self._latest = snapshot
        if not snapshot.valid:
            return
        update_totals(self._totals, snapshot)
        await self._publish(snapshot)

    async def _publish(self, snapshot: Snapshot) -> None:
        if self.sink is None:
            return
        try:
            if self.sink_timeout_seconds is None:
                self.sink.publish(snapshot)
            else:
                await asyncio.wait_for(
                    asyncio.to_thread(self.sink.publish, snapshot),
                    timeout=self.sink_timeout_seconds,
                )
        except asyncio.TimeoutError:
            logger.warning("Metrics sink did not finish within %.2fs", self.sink_timeout_seconds)
        except Exception:
            logger.warning("Metrics sink update failed", exc_info=True)

    def _serve_totals(self, reply: asyncio.Future) -> None:
        if reply.done():
            return
        reply.set_result(self._totals.copy())
        reset_totals(self._totals)

    @staticmethod
    def _reply(reply: asyncio.Future, value: object) -> None:
        if not reply.done():
            reply.set_result(value)

    def _fail_pending(self, leftovers: Dict[str, object]) -> None:
        pending = [leftovers[key] for key in ("snapshot", "totals") if key in leftovers]
        for requests in (self._snapshot_requests, self._totals_requests):
            while not requests.empty():
                pending.append(requests.get_nowait())
        for reply in pending:
            if isinstance(reply, asyncio.Future) and not reply.done():
                reply.set_exception(DistributorStopped("telemetry distributor stopped"))
