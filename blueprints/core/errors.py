# blueprints/core/errors.py
"""Таксономия ошибок сервиса доставки и единый JSON-формат ответа.

Сервисы бросают исключения из этого модуля, маршруты их не ловят:
обработчики ниже превращают их в
``{"ok": false, "errors": [{"code", "message", "details"}]}``.
"""
from __future__ import annotations
import logging
from typing import Any

from flask import current_app, jsonify
from flask_wtf.csrf import CSRFError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from extensions import db
from . import bp

log = logging.getLogger(__name__)


class DeliveryError(Exception):
    code = "DELIVERY_ERROR"
    http_status = 500

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(DeliveryError):
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(DeliveryError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(DeliveryError):
    code = "CONFLICT"
    http_status = 409


class StorageError(DeliveryError):
    code = "STORAGE_ERROR"
    http_status = 500


# ---------- хелперы ответа ----------
def ok(data: Any = None, status: int = 200, **extra):
    payload = {"ok": True, "data": data}
    payload.update(extra)
    return jsonify(payload), status

def error_response(code: str, message: str, status: int, details: Any = None):
    return jsonify({"ok": False, "errors": [{"code": code, "message": message, "details": details}]}), status

def pydantic_errors_safe(ve: PydanticValidationError) -> list[dict]:
    # ctx может содержать исключения: в JSON их не сериализовать
    errs = ve.errors(include_url=False)
    for e in errs:
        if "ctx" in e and isinstance(e["ctx"], dict):
            e["ctx"] = {k: str(v) for k, v in e["ctx"].items()}
        if "input" in e:
            e["input"] = str(e["input"]) if e["input"] is not None else None
    return errs


# ---------- обработчики ----------
@bp.app_errorhandler(DeliveryError)
def _delivery_error(e: DeliveryError):
    # сервис мог бросить посреди транзакции: блокировки не держим
    db.session.rollback()
    if isinstance(e, StorageError):
        log.error("storage error: %s", e.message, extra={"event": "storage_error"})
        message = e.message if current_app.debug else "Storage failure"
        return error_response(e.code, message, e.http_status)
    return error_response(e.code, e.message, e.http_status, e.details)

@bp.app_errorhandler(PydanticValidationError)
def _pydantic_error(e: PydanticValidationError):
    return error_response("VALIDATION_ERROR", "Invalid request body", 400, pydantic_errors_safe(e))

@bp.app_errorhandler(SQLAlchemyError)
def _sqlalchemy_error(e: SQLAlchemyError):
    db.session.rollback()
    log.exception("unhandled database error", extra={"event": "storage_error"})
    message = str(e) if current_app.debug else "Storage failure"
    return error_response(StorageError.code, message, 500)

@bp.app_errorhandler(CSRFError)
def _csrf_error(e: CSRFError):
    return error_response("CSRF_ERROR", e.description or "CSRF token missing or invalid", 400)

@bp.app_errorhandler(HTTPException)
def _http_error(e: HTTPException):
    code = (e.name or "error").upper().replace(" ", "_")
    return error_response(code, e.description or e.name, e.code or 500)
