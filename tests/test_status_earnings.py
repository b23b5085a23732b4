from __future__ import annotations
from decimal import Decimal

import pytest

from extensions import db
from models import TargetTier, WalletTransaction
from blueprints.core.errors import ConflictError, NotFoundError, ValidationError
from blueprints.delivery.services import (
    AssignmentCoordinator, DeliveryStatusMachine, EarningsLedger, GeoPoint,
)
from blueprints.delivery.services.earnings import earning_key, select_tier
from blueprints.delivery.services.status import can_transition


def _assign(ctx, order_id=None, courier_id=None, **snap):
    snapshot = {"customer_name": "Ivan", "customer_phone": "+7999", "customer_address": "MG Road 1",
                "delivery_date": ctx.day, "delivery_time": "10:00"}
    snapshot.update(snap)
    row, _ = AssignmentCoordinator().assign_or_update(order_id or ctx.o1, courier_id or ctx.alice, snapshot)
    return row.id

def _tiers():
    db.session.add_all([
        TargetTier(min_orders=5, max_orders=9, bonus_amount=Decimal("50"), tier_name="Silver", display_order=1),
        TargetTier(min_orders=10, max_orders=None, bonus_amount=Decimal("120"), tier_name="Gold", display_order=2),
    ])
    db.session.commit()

def _earnings(courier_id, day, n):
    # n завершённых заказов за день, как их записал бы credit_earning
    for i in range(n):
        db.session.add(WalletTransaction(
            courier_id=courier_id, order_id=1000 + i, type="earning", amount=Decimal("30"),
            business_date=day, dedupe_key=earning_key(1000 + i),
        ))
    db.session.commit()


# ---------- автомат статусов ----------
@pytest.mark.parametrize("current,target,allowed", [
    ("assigned", "picked_up", True),
    ("assigned", "delivered", True),       # пропуск вперёд допустим
    ("in_transit", "picked_up", False),
    ("picked_up", "cancelled", True),
    ("delivered", "cancelled", False),
    ("cancelled", "assigned", False),
    ("delivered", "delivered", True),
])
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed

def test_transition_rejects_unknown_status(ctx):
    aid = _assign(ctx)
    with pytest.raises(ValidationError):
        DeliveryStatusMachine().transition(aid, "bogus")
    with pytest.raises(NotFoundError):
        DeliveryStatusMachine().transition(9999, "picked_up")

def test_transition_backwards_is_conflict(ctx):
    aid = _assign(ctx)
    machine = DeliveryStatusMachine()
    machine.transition(aid, "in_transit")
    with pytest.raises(ConflictError):
        machine.transition(aid, "picked_up")

def test_transition_stores_photo_and_coordinates(ctx):
    aid = _assign(ctx)
    res = DeliveryStatusMachine().transition(aid, "picked_up", "https://cdn/p.jpg", GeoPoint(18.52, 73.85))
    assert res.changed is True and res.previous_status == "assigned"
    row = res.assignment
    assert (row.delivery_photo_url, row.delivery_latitude, row.delivery_longitude) == ("https://cdn/p.jpg", 18.52, 73.85)
    with pytest.raises(ValidationError):
        DeliveryStatusMachine().transition(aid, "in_transit", coordinates=GeoPoint(95, 0))

def test_cancel_sets_timestamp_and_skips_photo(ctx):
    aid = _assign(ctx)
    res = DeliveryStatusMachine().transition(aid, "cancelled", "https://cdn/p.jpg")
    assert res.assignment.cancelled_at is not None
    assert res.assignment.delivery_photo_url is None
    assert WalletTransaction.query.count() == 0

def test_repeat_status_is_noop(ctx):
    aid = _assign(ctx)
    machine = DeliveryStatusMachine()
    machine.transition(aid, "picked_up")
    res = machine.transition(aid, "picked_up")
    assert res.changed is False


# ---------- начисления ----------
def test_delivered_credits_exactly_once(ctx):
    aid = _assign(ctx)   # снимок берёт сумму заказа 500.00
    machine = DeliveryStatusMachine()
    res = machine.transition(aid, "delivered")
    assert res.assignment.delivered_at is not None
    machine.transition(aid, "delivered")
    EarningsLedger().credit_earning(aid)

    txs = WalletTransaction.query.filter_by(type="earning").all()
    assert len(txs) == 1
    tx = txs[0]
    # 30 + 2% от 500
    assert tx.amount == Decimal("40.00")
    assert tx.order_id == ctx.o1
    assert tx.meta["baseFee"] == 30.0 and tx.meta["percentFee"] == 10.0 and tx.meta["distanceIncentive"] == 0.0

def test_duplicate_insert_is_absorbed(ctx, monkeypatch):
    aid = _assign(ctx)
    DeliveryStatusMachine().transition(aid, "delivered")
    ledger = EarningsLedger()
    # без предварительной проверки: дубль ловит уникальный ключ
    monkeypatch.setattr(ledger, "_exists", lambda key: False)
    assert ledger.credit_earning(aid) is None
    assert WalletTransaction.query.filter_by(type="earning").count() == 1

def test_credit_requires_delivered(ctx):
    aid = _assign(ctx)
    with pytest.raises(ConflictError):
        EarningsLedger().credit_earning(aid)

def test_credit_failure_does_not_undo_transition(ctx, monkeypatch):
    aid = _assign(ctx)

    def boom(self, assignment_id):
        raise RuntimeError("wallet down")

    monkeypatch.setattr(EarningsLedger, "credit_earning", boom)
    res = DeliveryStatusMachine().transition(aid, "delivered")
    assert res.assignment.status == "delivered"
    db.session.expire_all()
    assert WalletTransaction.query.count() == 0

def test_distance_incentive_strategy(ctx):
    class FlatIncentive:
        def incentive(self, assignment):
            return Decimal("7.5")

    aid = _assign(ctx, total_amount=Decimal("100"))
    machine = DeliveryStatusMachine(EarningsLedger(incentive=FlatIncentive()))
    machine.transition(aid, "delivered")
    tx = WalletTransaction.query.filter_by(type="earning").one()
    assert tx.amount == Decimal("39.50")


# ---------- дневная цель ----------
@pytest.mark.parametrize("completed,bonus", [(8, Decimal("50.00")), (15, Decimal("120.00")), (3, None)])
def test_target_bonus_tiers(ctx, completed, bonus):
    _tiers()
    ledger = EarningsLedger()
    day = ledger.settings.business_date()
    _earnings(ctx.alice, day, completed)
    tx = ledger.evaluate_target_bonus(ctx.alice, day)
    if bonus is None:
        assert tx is None
    else:
        assert tx.amount == bonus
        assert tx.meta["bonusType"] == "target" and tx.meta["completedCount"] == completed

def test_select_tier_boundaries(ctx):
    _tiers()
    tiers = TargetTier.query.all()
    assert select_tier(tiers, 5).tier_name == "Silver"
    assert select_tier(tiers, 9).tier_name == "Silver"
    assert select_tier(tiers, 10).tier_name == "Gold"
    assert select_tier(tiers, 4) is None

def test_target_bonus_once_per_day(ctx):
    _tiers()
    ledger = EarningsLedger()
    day = ledger.settings.business_date()
    _earnings(ctx.alice, day, 6)
    assert ledger.evaluate_target_bonus(ctx.alice, day) is not None
    # ещё одна доставка в тот же день не даёт второго бонуса
    db.session.add(WalletTransaction(courier_id=ctx.alice, order_id=2000, type="earning",
                                     amount=Decimal("30"), business_date=day, dedupe_key=earning_key(2000)))
    db.session.commit()
    assert ledger.evaluate_target_bonus(ctx.alice, day) is None
    assert WalletTransaction.query.filter_by(type="bonus").count() == 1

def test_target_bonus_duplicate_insert_is_absorbed(ctx, monkeypatch):
    _tiers()
    ledger = EarningsLedger()
    day = ledger.settings.business_date()
    _earnings(ctx.alice, day, 6)
    # без предварительной проверки: второй бонус за день ловит ключ target:<courier>:<day>
    monkeypatch.setattr(ledger, "_exists", lambda key: False)
    assert ledger.evaluate_target_bonus(ctx.alice, day) is not None
    assert ledger.evaluate_target_bonus(ctx.alice, day) is None
    assert WalletTransaction.query.filter_by(type="bonus").count() == 1

def test_no_tiers_no_bonus(ctx):
    ledger = EarningsLedger()
    day = ledger.settings.business_date()
    _earnings(ctx.alice, day, 20)
    assert ledger.evaluate_target_bonus(ctx.alice, day) is None

def test_delivery_triggers_bonus(ctx):
    db.session.add(TargetTier(min_orders=1, max_orders=None, bonus_amount=Decimal("15"), tier_name="Start"))
    db.session.commit()
    aid = _assign(ctx)
    DeliveryStatusMachine().transition(aid, "delivered")
    bonus = WalletTransaction.query.filter_by(type="bonus").one()
    assert bonus.amount == Decimal("15.00") and bonus.order_id is None


# ---------- кошелёк ----------
def test_wallet_summary(ctx):
    machine = DeliveryStatusMachine()
    machine.transition(_assign(ctx, ctx.o1), "delivered")        # 30 + 10
    machine.transition(_assign(ctx, ctx.o2), "delivered")        # 30 + 5
    summary = EarningsLedger().wallet_summary(ctx.alice)
    assert summary["balance"] == Decimal("75.00")
    assert summary["today_earnings"] == Decimal("75.00")
    assert summary["completed_deliveries"] == 2

def test_list_transactions_pagination(ctx):
    ledger = EarningsLedger()
    _earnings(ctx.alice, ledger.settings.business_date(), 5)
    page = ledger.list_transactions(ctx.alice, page=2, limit=2)
    assert len(page["transactions"]) == 2
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}
    with pytest.raises(ValidationError):
        ledger.list_transactions(ctx.alice, tx_type="refund")
