from __future__ import annotations
import json, logging
from datetime import datetime, UTC
from uuid import uuid4

from flask import g, jsonify, request
from werkzeug.wrappers.response import Response

from flask_wtf.csrf import generate_csrf
from extensions import csrf

from . import bp                 # используем bp из __init__.py
from . import api_bp
from . import errors  # noqa: F401  регистрирует app_errorhandler'ы

REQUEST_ID_HEADER = "X-Request-ID"

# поля, которые доменные логгеры кладут в extra=...
_EXTRA_KEYS = (
    "event", "path", "method", "status", "duration_ms", "request_id",
    "slot_id", "delivery_date", "quantity", "previous", "new",
    "order_id", "assignment_id", "courier_id", "old_courier_id", "new_courier_id",
    "from_status", "to_status", "amount", "tier_id", "error",
)

def _utcnow() -> datetime:
    return datetime.now(UTC)

class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": _utcnow().isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

def _setup_structured_logging(app):
    logger = logging.getLogger()
    has_json = any(
        isinstance(h, logging.StreamHandler)
        and isinstance(getattr(h, "formatter", None), JSONFormatter)
        for h in logger.handlers
    )
    if not has_json:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

@api_bp.get("/csrf")
@csrf.exempt          # токен выдаём без проверки
def get_csrf():
    token = generate_csrf()
    resp = jsonify({"csrf": token})
    resp.set_cookie("csrf_token", token, samesite="Lax")
    return resp

@bp.before_app_request
def _start_timer():
    g._req_start = _utcnow()
    g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex

@bp.after_app_request
def _log_request(response: Response):
    try:
        duration_ms = int((_utcnow() - g._req_start).total_seconds() * 1000)
    except AttributeError:
        duration_ms = None
    response.headers.setdefault(REQUEST_ID_HEADER, getattr(g, "request_id", ""))
    extra = {
        "event":"http_request",
        "path":request.path,
        "method":request.method,
        "status":response.status_code,
        "duration_ms":duration_ms,
        "request_id":getattr(g, "request_id", None),
    }
    # логгер уже настроен в _on_register
    logging.getLogger(__name__).info("request handled", extra=extra)
    return response

@bp.record_once
def _on_register(state):
    _setup_structured_logging(state.app)

@bp.get("/health")
def health():
    return jsonify({
        "status":"ok",
        "ts": _utcnow().isoformat(timespec="seconds").replace("+00:00", "Z"),
    })
