from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse

from inverter_agent.http_utils import collect_totals
from inverter_agent.services.munin import NO_DATA, render_config, render_values

router = APIRouter(prefix="/munin")


@router.get("", response_class=PlainTextResponse)
async def munin_values(request: Request):
    totals = await collect_totals(request.app)
    if totals.samples == 0:
        return PlainTextResponse(NO_DATA, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return PlainTextResponse(render_values(totals))


@router.get("/config", response_class=PlainTextResponse)
async def munin_config():
    return PlainTextResponse(render_config())
