from __future__ import annotations

import logging

from fastapi import HTTPException, status
from fastapi.applications import FastAPI

from inverter_agent.hardware.snapshot import Snapshot
from inverter_agent.services.distributor import DistributorStopped, TelemetryDistributor
from inverter_agent.services.formatter import SnapshotFormatter
from inverter_agent.services.prometheus_sink import PrometheusSink
from inverter_agent.services.totals import RunningTotals

logger = logging.getLogger(__name__)


def distributor(app: FastAPI) -> TelemetryDistributor | None:
    return getattr(app.state, "distributor", None)


def formatter(app: FastAPI) -> SnapshotFormatter:
    current = getattr(app.state, "formatter", None)
    return current if current is not None else SnapshotFormatter()


def metrics_sink(app: FastAPI) -> PrometheusSink | None:
    return getattr(app.state, "metrics_sink", None)


def require_distributor(app: FastAPI) -> TelemetryDistributor:
    current = distributor(app)
    if current is None or current.stopped:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Telemetry distributor is not running",
        )
    return current


async def latest_snapshot(app: FastAPI) -> Snapshot:
    try:
        return await require_distributor(app).latest_snapshot()
    except DistributorStopped as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


async def collect_totals(app: FastAPI) -> RunningTotals:
    try:
        return await require_distributor(app).collect_totals()
    except DistributorStopped as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
