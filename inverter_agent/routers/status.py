from __future__ import annotations

import time
from typing import Dict

import psutil
from fastapi import APIRouter, Depends, Request

from inverter_agent.config import Settings, get_settings
from inverter_agent.http_utils import distributor, formatter, latest_snapshot

router = APIRouter(prefix="/v1")


@router.get("/status")
async def status_endpoint(request: Request, settings: Settings = Depends(get_settings)) -> Dict[str, object]:
    snapshot = await latest_snapshot(request.app)
    record = formatter(request.app).display_record(snapshot)
    uptime = int(time.monotonic() - getattr(request.app.state, "started_at", time.monotonic()))
    memory = psutil.virtual_memory()
    current = distributor(request.app)
    return {
        "service_name": settings.service_name,
        "service_version": settings.service_version,
        "transport": settings.transport.describe(),
        "simulation": settings.simulation.enabled,
        "distributor_running": bool(current and current.running),
        "uptime_seconds": uptime,
        "cpu_percent": psutil.cpu_percent(interval=0.0),
        "memory_percent": memory.percent,
        "version": snapshot.version,
        "snapshot": record.as_dict(),
    }
