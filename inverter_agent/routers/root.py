from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from inverter_agent.config import Settings, get_settings
from inverter_agent.http_utils import formatter, latest_snapshot
from inverter_agent.ui import render_status_page

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def status_page(request: Request, settings: Settings = Depends(get_settings)):
    snapshot = await latest_snapshot(request.app)
    try:
        record = formatter(request.app).display_record(snapshot)
        page = render_status_page(record, settings)
    except Exception as exc:
        logger.exception("Failed to render status page")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="render failed") from exc
    return HTMLResponse(page)


@router.get("/healthz")
async def healthz():
    return {"status": "ok"}
