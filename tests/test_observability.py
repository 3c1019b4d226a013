from __future__ import annotations

import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from inverter_agent.observability import (
    REQUEST_ID_HEADER,
    JsonLogFormatter,
    LinkContextFilter,
    RequestIdMiddleware,
    current_request,
)


def _record(msg: str = "frame decoded", **extra) -> logging.LogRecord:
    record = logging.LogRecord("inverter_agent.test", logging.INFO, __file__, 1, msg, (), None)
    record.__dict__.update(extra)
    return record


def test_json_records_carry_service_and_link():
    record = _record(bytes_read=42)
    LinkContextFilter("inverter-agent", "tcp://bridge:8139").filter(record)

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["service"] == "inverter-agent"
    assert payload["link"] == "tcp://bridge:8139"
    assert payload["message"] == "frame decoded"
    assert payload["extra"] == {"bytes_read": 42}
    assert "request_id" not in payload
    assert "path" not in payload


def test_plain_records_outside_requests_have_placeholder_id():
    record = _record()
    LinkContextFilter("inverter-agent", "/dev/ttyUSB0@2400").filter(record)

    assert record.request_id == "-"
    assert record.path is None


def test_request_context_is_attached_inside_requests():
    seen: list[dict] = []
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    link_filter = LinkContextFilter("inverter-agent", "simulated")
    formatter = JsonLogFormatter()

    @app.get("/v1/status")
    async def status():
        record = _record("serving status")
        link_filter.filter(record)
        seen.append(json.loads(formatter.format(record)))
        return {"path": current_request().path}

    with TestClient(app) as client:
        resp = client.get("/v1/status", headers={REQUEST_ID_HEADER: "req-7"})

    assert resp.json() == {"path": "/v1/status"}
    assert resp.headers[REQUEST_ID_HEADER] == "req-7"
    assert seen[0]["request_id"] == "req-7"
    assert seen[0]["path"] == "/v1/status"
    assert seen[0]["link"] == "simulated"
    assert current_request() is None
