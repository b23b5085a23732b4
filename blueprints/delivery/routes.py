from __future__ import annotations

from flask import abort, request
from flask_login import current_user, login_required

from blueprints.auth.routes import admin_required, courier_required, is_staff
from blueprints.core.errors import ok
from blueprints.core.schemas import dump_many, parse_date_arg, parse_int_arg
from . import api_bp
from .services import (
    AssignmentCoordinator, DeliveryStatusMachine, EarningsLedger, GeoPoint, WorkloadReporter,
)
from .services import assignment as assignment_svc
from .services import earnings as earnings_svc
from .services.catalog import CourierRegistry
from .services.status import track_location
from .schemas import (
    AssignIn, AssignmentOut, BulkAssignIn, BulkResultOut, CourierOut, CourierStatsOut,
    HistoryEntryOut, OrderAssignmentOut, ProgressOut, ReassignIn, ReassignOut, StatusIn,
    TierIn, TierOut, TrackIn, TrackingOut, WalletSummaryOut, WalletTxPageOut, WorkloadOut,
)


def _json() -> dict:
    return request.get_json(silent=True) or {}

def _ensure_own(courier_id: int) -> None:
    # курьер видит только своё, админ и оператор видят всех
    if not is_staff(current_user) and current_user.id != courier_id:
        abort(403)

# ---------- назначения ----------
@api_bp.post("/orders")
@admin_required
def assign_order():
    body = AssignIn.model_validate(_json())
    row, created = AssignmentCoordinator().assign_or_update(
        body.order_id, body.courier_id, body.snapshot(), priority=body.priority,
    )
    msg = "Delivery order created successfully" if created else "Delivery assignment updated successfully"
    return ok(AssignmentOut.out(row), status=201 if created else 200, created=created, message=msg)

@api_bp.post("/bulk-assign")
@admin_required
def bulk_assign():
    body = BulkAssignIn.model_validate(_json())
    res = AssignmentCoordinator().bulk_assign(body.order_ids, body.courier_id, body.priority)
    msg = (f"Bulk assignment completed: {len(res.assigned)} assigned, "
           f"{len(res.updated)} updated, {len(res.failed)} failed")
    return ok(BulkResultOut.out(res), message=msg)

@api_bp.put("/reassign/<int:order_id>")
@admin_required
def reassign(order_id: int):
    body = ReassignIn.model_validate(_json())
    res = AssignmentCoordinator().reassign(order_id, body.courier_id, body.reason)
    return ok(ReassignOut.out(res), message="Order reassigned successfully")

@api_bp.get("/assignment-history/<int:order_id>")
@login_required
def assignment_history(order_id: int):
    return ok(dump_many(HistoryEntryOut, AssignmentCoordinator().get_assignment_history(order_id)))

@api_bp.get("/order-assignment/<int:order_id>")
@admin_required
def order_assignment(order_id: int):
    data = assignment_svc.get_order_assignment(order_id)
    if data is None:
        return ok(None, message="Order is not assigned to any courier")
    return ok(OrderAssignmentOut.out(data))

@api_bp.get("/available-couriers")
@admin_required
def available_couriers():
    return ok(dump_many(CourierOut, CourierRegistry().list_active()))

@api_bp.get("/workload")
@login_required
def workload():
    return ok(dump_many(WorkloadOut, WorkloadReporter().get_workload()))

# ---------- курьер ----------
@api_bp.get("/orders/<int:courier_id>")
@courier_required
def courier_orders(courier_id: int):
    _ensure_own(courier_id)
    day = parse_date_arg(request.args, "date", required=False)
    rows = assignment_svc.list_courier_orders(courier_id, request.args.get("status"), day)
    return ok(dump_many(AssignmentOut, rows))

@api_bp.get("/stats/<int:courier_id>")
@courier_required
def courier_stats(courier_id: int):
    _ensure_own(courier_id)
    day = parse_date_arg(request.args, "date", required=False)
    return ok(CourierStatsOut.out(WorkloadReporter().courier_stats(courier_id, day)))

@api_bp.put("/orders/<int:assignment_id>/status")
@courier_required
def update_status(assignment_id: int):
    body = StatusIn.model_validate(_json())
    _ensure_own(assignment_svc.get_assignment(assignment_id).courier_id)
    coords = GeoPoint(body.coordinates.lat, body.coordinates.lng) if body.coordinates else None
    res = DeliveryStatusMachine().transition(assignment_id, body.status, body.delivery_photo_url, coords)
    return ok(AssignmentOut.out(res.assignment), previousStatus=res.previous_status,
              changed=res.changed, message="Delivery status updated successfully")

@api_bp.post("/orders/<int:assignment_id>/track")
@courier_required
def track(assignment_id: int):
    body = TrackIn.model_validate(_json())
    _ensure_own(assignment_svc.get_assignment(assignment_id).courier_id)
    point = track_location(assignment_id, body.latitude, body.longitude, body.accuracy)
    return ok(TrackingOut.out(point), status=201, message="Location tracked successfully")

# ---------- кошелёк ----------
@api_bp.get("/wallet/summary")
@courier_required
def wallet_summary():
    return ok(WalletSummaryOut.out(EarningsLedger().wallet_summary(current_user.id)))

@api_bp.get("/wallet/transactions")
@courier_required
def wallet_transactions():
    page = parse_int_arg(request.args, "page", 1)
    limit = parse_int_arg(request.args, "limit", 20, hi=100)
    data = EarningsLedger().list_transactions(current_user.id, page, limit, request.args.get("type") or None)
    return ok(WalletTxPageOut.out(data))

# ---------- уровни дневной цели ----------
@api_bp.get("/target-tiers/active")
@login_required
def active_tiers():
    return ok(dump_many(TierOut, earnings_svc.active_tiers()))

@api_bp.get("/target-tiers/progress")
@courier_required
def tier_progress():
    return ok(ProgressOut.out(EarningsLedger().daily_progress(current_user.id)))

@api_bp.get("/target-tiers/admin")
@admin_required
def list_tiers():
    return ok(dump_many(TierOut, earnings_svc.list_tiers()))

@api_bp.post("/target-tiers/admin")
@admin_required
def upsert_tier():
    body = TierIn.model_validate(_json())
    tier, created = earnings_svc.upsert_tier(body.model_dump())
    msg = "Target tier created successfully" if created else "Target tier updated successfully"
    return ok(TierOut.out(tier), status=201 if created else 200, message=msg)

@api_bp.put("/target-tiers/admin/<int:tier_id>")
@admin_required
def update_tier(tier_id: int):
    body = TierIn.model_validate(_json())
    tier, _ = earnings_svc.upsert_tier(body.model_dump(), tier_id=tier_id)
    return ok(TierOut.out(tier), message="Target tier updated successfully")

@api_bp.delete("/target-tiers/admin/<int:tier_id>")
@admin_required
def delete_tier(tier_id: int):
    earnings_svc.delete_tier(tier_id)
    return ok(None, message="Target tier deleted successfully")
