import asyncio
import json
import logging

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from aqiops.adapters import IQAirAdapter
from aqiops.middleware import RequestLogMiddleware
from aqiops.middleware.logging import REDACTED, redact_headers, redact_params

from tests.helpers import IQAIR_BASE, Recorder, iqair_city_payload


def _events(caplog, name):
    return [
        json.loads(r.getMessage())
        for r in caplog.records
        if r.name == "aqiops" and json.loads(r.getMessage())["event"] == name
    ]


def test_credentials_are_masked():
    assert redact_params({"key": "s3cret", "city": "Bangkok"}) == {"key": REDACTED, "city": "Bangkok"}
    assert redact_headers({"X-API-Key": "admin", "Accept": "*/*"}) == {"X-API-Key": REDACTED, "Accept": "*/*"}


def test_upstream_request_log_hides_provider_key(caplog, bangkok):
    caplog.set_level(logging.INFO, logger="aqiops")
    recorder = Recorder({"/nearest_city": lambda request: httpx.Response(200, json=iqair_city_payload())})
    adapter = IQAirAdapter(api_key="s3cret", base_url=IQAIR_BASE, transport=recorder.transport)

    asyncio.run(adapter.fetch_nearest(bangkok))

    (event,) = _events(caplog, "upstream_request")
    assert event["source"] == "iqair"
    assert event["params"]["key"] == REDACTED
    assert recorder.requests[0].url.params["key"] == "s3cret"
    assert all("s3cret" not in r.getMessage() for r in caplog.records if r.name == "aqiops")


def test_request_log_echoes_request_id(caplog):
    caplog.set_level(logging.INFO, logger="aqiops")
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    with TestClient(app) as client:
        r = client.get("/ping", params={"token": "t"}, headers={"x-request-id": "abc", "x-api-key": "admin"})

    assert r.headers["x-request-id"] == "abc"
    (event,) = _events(caplog, "http_request")
    assert event["status"] == 200
    assert event["query"] == {"token": REDACTED}
    assert event["headers"]["x-api-key"] == REDACTED
