"""FastAPI application serving inverter telemetry to the status page, munin and Prometheus."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI

from inverter_agent.config import Settings, get_settings
from inverter_agent.hardware import StreamTelemetrySource, TelemetrySource, TransportError
from inverter_agent.observability import configure_observability
from inverter_agent.routers import metrics as metrics_router
from inverter_agent.routers import munin as munin_router
from inverter_agent.routers import root as root_router
from inverter_agent.routers import status as status_router
from inverter_agent.services.distributor import TelemetryDistributor
from inverter_agent.services.formatter import SnapshotFormatter
from inverter_agent.services.prometheus_sink import PrometheusSink
from inverter_agent.services.simulator import SimulatedSource

logger = logging.getLogger(__name__)


def build_source(settings: Settings) -> TelemetrySource:
    if settings.simulation.enabled:
        return SimulatedSource(settings.simulation, seed_hint=settings.service_name)
    return StreamTelemetrySource(settings.transport)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    source: TelemetrySource = getattr(app.state, "source", None) or build_source(settings)
    try:
        await source.open()
    except TransportError:
        logger.error("Could not open inverter link at %s", settings.transport.describe())
        raise
    try:
        sink = PrometheusSink(namespace=settings.metrics.namespace, led_names=settings.led_names)
        distributor = TelemetryDistributor(
            source.queue,
            sink,
            sink_timeout_seconds=settings.metrics.sink_timeout_seconds,
        )
    except Exception:
        await source.close()
        raise
    source.start()
    distributor.start()

    app.state.source = source
    app.state.metrics_sink = sink
    app.state.distributor = distributor
    app.state.formatter = SnapshotFormatter(settings.led_names, settings.state_names)
    app.state.started_at = time.monotonic()
    logger.info("Inverter agent started (%s)", "simulated" if settings.simulation.enabled else settings.transport.describe())

    try:
        yield
    finally:
        await distributor.stop()
        await source.close()
        logger.info("Inverter agent stopped")


def create_app(*, settings: Settings | None = None, source: TelemetrySource | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Inverter Agent", version=settings.service_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.source = source
    configure_observability(
        app,
        service_name=settings.service_name,
        log_level=settings.log_level,
        link="simulated" if settings.simulation.enabled else settings.transport.describe(),
        log_json=settings.log_json,
    )

    app.include_router(root_router.router)
    app.include_router(status_router.router)
    app.include_router(munin_router.router)
    app.include_router(metrics_router.router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "inverter_agent.main:app",
        host=settings.web.listen_host,
        port=settings.web.listen_port,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run()
