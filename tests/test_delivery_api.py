from __future__ import annotations
from datetime import datetime
from decimal import Decimal

from extensions import db
from models import TargetTier, WalletTransaction
from blueprints.delivery.services import AssignmentCoordinator, WorkloadReporter
from blueprints.delivery.settings import current_settings


def _assign(app, seed, order_id, courier_id, status=None):
    with app.app_context():
        row, _ = AssignmentCoordinator().assign_or_update(order_id, courier_id, {
            "customer_name": "Ivan", "customer_phone": "+7999", "customer_address": "MG Road 1",
            "delivery_date": seed.day, "delivery_time": "10:00",
        })
        if status:
            row.status = status
            db.session.commit()
        return row.id


# ---------- статус ----------
def test_status_flow_over_http(app, as_alice, seed):
    aid = _assign(app, seed, seed.o1, seed.alice)

    r = as_alice.put(f"/api/v1/delivery/orders/{aid}/status", json={"status": "bogus"})
    assert r.status_code == 400
    assert r.get_json()["errors"][0]["code"] == "VALIDATION_ERROR"

    r = as_alice.put(f"/api/v1/delivery/orders/{aid}/status",
                     json={"status": "picked_up", "coordinates": {"latitude": 18.5, "longitude": 73.8}})
    assert r.status_code == 200
    js = r.get_json()
    assert js["previousStatus"] == "assigned" and js["changed"] is True
    assert js["data"]["deliveryLatitude"] == 18.5

    r = as_alice.put(f"/api/v1/delivery/orders/{aid}/status", json={"status": "delivered"})
    assert r.status_code == 200
    r = as_alice.put(f"/api/v1/delivery/orders/{aid}/status", json={"status": "delivered"})
    assert r.status_code == 200 and r.get_json()["changed"] is False

    r = as_alice.put(f"/api/v1/delivery/orders/{aid}/status", json={"status": "in_transit"})
    assert r.status_code == 409
    assert r.get_json()["errors"][0]["code"] == "CONFLICT"

    with app.app_context():
        assert WalletTransaction.query.filter_by(order_id=seed.o1, type="earning").count() == 1

def test_status_of_foreign_order_is_forbidden(app, as_alice, seed):
    aid = _assign(app, seed, seed.o1, seed.bob)
    r = as_alice.put(f"/api/v1/delivery/orders/{aid}/status", json={"status": "picked_up"})
    assert r.status_code == 403

def test_status_unknown_assignment(as_alice, seed):
    r = as_alice.put("/api/v1/delivery/orders/9999/status", json={"status": "picked_up"})
    assert r.status_code == 404

def test_status_requires_login(client, seed):
    r = client.put("/api/v1/delivery/orders/1/status", json={"status": "picked_up"})
    assert r.status_code == 401
    assert r.get_json()["errors"][0]["code"] == "UNAUTHORIZED"


# ---------- курьерские списки, трекинг, статистика ----------
def test_courier_orders_and_stats(app, as_alice, seed):
    _assign(app, seed, seed.o1, seed.alice)
    _assign(app, seed, seed.o2, seed.alice, status="delivered")
    _assign(app, seed, seed.o3, seed.bob)

    r = as_alice.get(f"/api/v1/delivery/orders/{seed.alice}")
    assert {o["orderId"] for o in r.get_json()["data"]} == {seed.o1, seed.o2}
    r = as_alice.get(f"/api/v1/delivery/orders/{seed.alice}?status=delivered&date=2026-10-20")
    assert [o["orderId"] for o in r.get_json()["data"]] == [seed.o2]
    assert as_alice.get(f"/api/v1/delivery/orders/{seed.bob}").status_code == 403

    r = as_alice.get(f"/api/v1/delivery/stats/{seed.alice}")
    assert r.get_json()["data"] == {"totalOrders": 2, "completedOrders": 1, "pendingOrders": 1, "totalEarnings": 0.0}

def test_track_location(app, as_alice, seed):
    aid = _assign(app, seed, seed.o1, seed.alice)
    r = as_alice.post(f"/api/v1/delivery/orders/{aid}/track", json={"latitude": 18.52, "longitude": 73.85, "accuracy": 5})
    assert r.status_code == 201
    assert r.get_json()["data"]["assignmentId"] == aid

    r = as_alice.post(f"/api/v1/delivery/orders/{aid}/track", json={"latitude": 120, "longitude": 73.85})
    assert r.status_code == 400


# ---------- загрузка курьеров ----------
def test_workload_ordering(app, as_admin, seed):
    _assign(app, seed, seed.o1, seed.bob)
    _assign(app, seed, seed.o2, seed.bob, status="in_transit")
    _assign(app, seed, seed.o3, seed.alice, status="delivered")

    r = as_admin.get("/api/v1/delivery/workload")
    assert r.status_code == 200
    data = r.get_json()["data"]
    # по убыванию числа заказов; неактивный Ghost не попадает
    assert [w["courierName"] for w in data] == ["Bob", "Alice"]
    assert data[0]["totalOrders"] == 2 and data[0]["assignedCount"] == 1 and data[0]["inTransitCount"] == 1
    assert data[1]["deliveredCount"] == 1

def test_workload_ties_by_name(ctx):
    rows = WorkloadReporter().get_workload()
    assert [(w.courier_name, w.total_orders) for w in rows] == [("Alice", 0), ("Bob", 0)]


# ---------- кошелёк и цели ----------
def test_wallet_endpoints(app, as_alice, seed):
    with app.app_context():
        db.session.add(TargetTier(min_orders=1, max_orders=None, bonus_amount=Decimal("15"), tier_name="Start"))
        db.session.commit()
    aid = _assign(app, seed, seed.o1, seed.alice)
    as_alice.put(f"/api/v1/delivery/orders/{aid}/status", json={"status": "delivered"})

    r = as_alice.get("/api/v1/delivery/wallet/summary")
    assert r.get_json()["data"] == {
        "balance": 55.0, "todayEarnings": 40.0, "weekEarnings": 40.0, "monthEarnings": 40.0, "completedDeliveries": 1,
    }

    r = as_alice.get("/api/v1/delivery/wallet/transactions?type=earning")
    js = r.get_json()["data"]
    assert js["pagination"] == {"page": 1, "limit": 20, "total": 1, "totalPages": 1}
    assert js["transactions"][0]["meta"]["orderTotal"] == 500.0

    assert as_alice.get("/api/v1/delivery/wallet/transactions?type=refund").status_code == 400

    r = as_alice.get("/api/v1/delivery/target-tiers/progress")
    progress = r.get_json()["data"]
    assert progress["completedCount"] == 1
    assert progress["currentTier"]["tierName"] == "Start"
    assert progress["nextTier"] is None
    assert progress["bonusAlreadyCredited"] is True

def test_tier_admin_endpoints(as_admin, seed):
    r = as_admin.post("/api/v1/delivery/target-tiers/admin",
                      json={"minOrders": 5, "maxOrders": 9, "bonusAmount": 50, "tierName": "Silver"})
    assert r.status_code == 201
    tier_id = r.get_json()["data"]["id"]

    r = as_admin.post("/api/v1/delivery/target-tiers/admin", json={"minOrders": 9, "maxOrders": 5, "bonusAmount": 1})
    assert r.status_code == 400

    r = as_admin.put(f"/api/v1/delivery/target-tiers/admin/{tier_id}",
                     json={"minOrders": 5, "maxOrders": 9, "bonusAmount": 60, "isActive": False})
    assert r.get_json()["data"]["bonusAmount"] == 60.0
    assert as_admin.get("/api/v1/delivery/target-tiers/active").get_json()["data"] == []
    assert len(as_admin.get("/api/v1/delivery/target-tiers/admin").get_json()["data"]) == 1

    assert as_admin.delete(f"/api/v1/delivery/target-tiers/admin/{tier_id}").status_code == 200
    assert as_admin.delete(f"/api/v1/delivery/target-tiers/admin/{tier_id}").status_code == 404

def test_tier_admin_forbidden_for_courier(as_alice, seed):
    assert as_alice.get("/api/v1/delivery/target-tiers/admin").status_code == 403

def test_business_date_uses_delivery_timezone(app):
    with app.app_context():
        settings = current_settings()
    # 20:00 UTC = 01:30 следующего дня в Asia/Kolkata
    assert settings.business_date(datetime(2026, 10, 20, 20, 0)).isoformat() == "2026-10-21"
