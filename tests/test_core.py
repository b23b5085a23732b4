from __future__ import annotations
import json
import logging

from app import create_app
from blueprints.core.routes import JSONFormatter

REQUEST_ID = "X-Request-ID"

def test_health_ok():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health")
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["status"] == "ok"
        assert data["ts"].endswith("Z")

def test_request_id_is_echoed_or_generated():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health", headers={REQUEST_ID: "abc123"})
        assert rv.headers[REQUEST_ID] == "abc123"
        rv2 = c.get("/health")
        # своего id нет: сгенерировали uuid4 hex
        assert len(rv2.headers[REQUEST_ID]) == 32

def test_unknown_route_uses_error_body():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/api/v1/nope")
        assert rv.status_code == 404
        js = rv.get_json()
        assert js["ok"] is False
        assert js["errors"][0]["code"] == "NOT_FOUND"

def test_csrf_token_endpoint():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/api/v1/csrf")
        assert rv.status_code == 200
        assert rv.get_json()["csrf"]

def test_json_formatter_keeps_domain_fields():
    record = logging.LogRecord("delivery", logging.INFO, __file__, 1, "slot capacity decremented", None, None)
    record.event = "slot_decrement"
    record.slot_id = 7
    record.previous = 3
    record.new = 1
    record.unrelated = "skip me"
    payload = json.loads(JSONFormatter().format(record))
    assert payload["msg"] == "slot capacity decremented"
    assert (payload["event"], payload["slot_id"], payload["previous"], payload["new"]) == ("slot_decrement", 7, 3, 1)
    assert "unrelated" not in payload
