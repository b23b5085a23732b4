from __future__ import annotations

from flask import request

from extensions import csrf
from blueprints.auth.routes import admin_required
from blueprints.core.errors import ok
from blueprints.core.schemas import dump_many, parse_date_arg
from . import api_bp
from . import services
from .schemas import (
    AvailabilityOut, AvailabilityOverrideIn, DecrementIn, DecrementOut,
    SlotIn, SlotOut, SlotStatsOut, SlotUpdateIn,
)


def _json() -> dict:
    return request.get_json(silent=True) or {}

def _active_arg():
    raw = request.args.get("active")
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")

# ---------- availability ----------
@api_bp.get("/availability")
def availability():
    start = parse_date_arg(request.args, "startDate", "start_date")
    end = parse_date_arg(request.args, "endDate", "end_date")
    rows = services.SlotCapacityManager().get_availability(start, end)
    return ok(dump_many(AvailabilityOut, rows))

@api_bp.post("/availability/decrement")
@csrf.exempt          # вызывается checkout-сервисом, не из браузерной сессии
def decrement():
    body = DecrementIn.model_validate(_json())
    res = services.SlotCapacityManager().decrement(body.slot_id, body.delivery_date, body.quantity)
    return ok(DecrementOut.out(res))

@api_bp.put("/availability")
@admin_required
def override_availability():
    body = AvailabilityOverrideIn.model_validate(_json())
    row = services.SlotCapacityManager().set_availability(
        body.slot_id, body.delivery_date,
        max_orders=body.max_orders,
        available_orders=body.available_orders,
        is_available=body.is_available,
    )
    return ok(AvailabilityOut.out(row), message="Slot availability updated successfully")

# ---------- slots CRUD ----------
@api_bp.get("")
def list_slots():
    return ok(dump_many(SlotOut, services.list_slots(_active_arg())))

@api_bp.get("/stats")
@admin_required
def slot_stats():
    return ok(SlotStatsOut.out(services.slot_stats()))

@api_bp.get("/<int:slot_id>")
def get_slot(slot_id: int):
    return ok(SlotOut.out(services.get_slot(slot_id)))

@api_bp.post("")
@admin_required
def create_slot():
    body = SlotIn.model_validate(_json())
    slot = services.create_slot(body.model_dump())
    return ok(SlotOut.out(slot), status=201)

@api_bp.put("/<int:slot_id>")
@admin_required
def update_slot(slot_id: int):
    body = SlotUpdateIn.model_validate(_json())
    slot = services.update_slot(slot_id, body.model_dump(exclude_unset=True))
    return ok(SlotOut.out(slot))

@api_bp.delete("/<int:slot_id>")
@admin_required
def delete_slot(slot_id: int):
    services.delete_slot(slot_id)
    return ok(None, message="Delivery slot deleted successfully")

@api_bp.patch("/<int:slot_id>/toggle-status")
@admin_required
def toggle_slot(slot_id: int):
    slot = services.toggle_slot(slot_id)
    return ok(SlotOut.out(slot))
