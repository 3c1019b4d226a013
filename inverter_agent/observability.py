"""Log plumbing for the agent: every record carries the device link and, inside
an HTTP request, the request id and path."""
from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, NamedTuple, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(link)s %(request_id)s] %(message)s"


class RequestContext(NamedTuple):
    request_id: str
    path: str


_request_ctx: ContextVar[Optional[RequestContext]] = ContextVar("inverter_request", default=None)

# Context fields set by LinkContextFilter; never repeated under "extra".
_CONTEXT_ATTRS = ("service", "link", "request_id", "path")
_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def current_request() -> Optional[RequestContext]:
    return _request_ctx.get()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with ``X-Request-ID`` (taken from the caller when present)."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = _request_ctx.set(RequestContext(request_id, request.url.path))
        try:
            response = await call_next(request)
        finally:
            _request_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class LinkContextFilter(logging.Filter):
    def __init__(self, service: str, link: str) -> None:
        super().__init__()
        self.service = service
        self.link = link

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = current_request()
        record.service = self.service
        record.link = self.link
        record.request_id = getattr(record, "request_id", None) or (ctx.request_id if ctx else "-")
        record.path = ctx.path if ctx else None
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_ATTRS:
            value = getattr(record, key, None)
            if value not in (None, "-"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key not in _CONTEXT_ATTRS
        }
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, default=str)


def configure_logging(service: str, level: str = "INFO", *, link: str = "-", json_output: bool = True) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonLogFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    handler.addFilter(LinkContextFilter(service, link))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())

    # uvicorn installs its own handlers unless they are replaced here.
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(logger_name)
        logger.handlers = [handler]
        logger.setLevel(level.upper())
        logger.propagate = False
    return handler


def configure_observability(
    app: FastAPI,
    *,
    service_name: str,
    log_level: str,
    link: str = "-",
    log_json: bool = True,
) -> None:
    configure_logging(service_name, log_level, link=link, json_output=log_json)
    app.add_middleware(RequestIdMiddleware)
