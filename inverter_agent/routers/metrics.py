from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response, status

from inverter_agent.http_utils import metrics_sink

router = APIRouter()


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    sink = metrics_sink(request.app)
    if sink is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Metrics are not available")
    return Response(content=sink.render(), media_type=sink.content_type)
