from __future__ import annotations

import json
import logging

from services.observability import RequestIdFilter, set_request_id


def test_request_id_added_when_missing(client):
    resp = client.get("/health")
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID")


def test_request_id_echoed_when_present(client):
    resp = client.get("/health", headers={"X-Request-ID": "client-request-id"})
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID") == "client-request-id"


def test_request_log_masks_signature_and_auth_headers(client, caplog):
    caplog.set_level(logging.INFO, logger="settlement.http")
    resp = client.get(
        "/health",
        headers={"Authorization": "Bearer secret-token", "X-Razorpay-Signature": "deadbeef"},
    )
    assert resp.status_code == 200, resp.text

    lines = [json.loads(r.message) for r in caplog.records if r.name == "settlement.http"]
    assert lines
    line = lines[-1]
    assert line["event"] == "http_request"
    assert line["method"] == "GET"
    assert line["path"] == "/health"
    assert line["status"] == 200
    headers = {k.lower(): v for k, v in line["headers"].items()}
    assert headers["authorization"] == "***"
    assert headers["x-razorpay-signature"] == "***"
    assert "secret-token" not in caplog.text



def test_log_filter_stamps_request_id():
    flt = RequestIdFilter()
    record = logging.LogRecord("settlement.test", logging.INFO, __file__, 1, "msg", None, None)
    assert flt.filter(record) is True
    assert record.request_id == "-"

    set_request_id("rid-7")
    try:
        flt.filter(record)
    finally:
        set_request_id(None)
    assert record.request_id == "rid-7"
