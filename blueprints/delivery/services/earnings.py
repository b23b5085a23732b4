# blueprints/delivery/services/earnings.py
"""Кошелёк курьера: начисление за доставку и дневной бонус за цель.

Идемпотентность держится на уникальном dedupe_key:
``earning:<order_id>`` даёт одно начисление на заказ,
``target:<courier_id>:<YYYY-MM-DD>`` даёт один бонус на курьера в сутки.
Повторная вставка ловится как IntegrityError внутри SAVEPOINT и
превращается в no-op, а не в ошибку для вызывающего.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from math import ceil
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import DeliveryAssignment, DeliveryStatus, TargetTier, WalletTransaction, WalletTxType, utcnow
from blueprints.core.errors import ConflictError, NotFoundError, ValidationError
from blueprints.delivery.settings import DeliverySettings, current_settings

log = logging.getLogger(__name__)

CENT = Decimal("0.01")
TX_TYPES = {t.value for t in WalletTxType}


def money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)

def earning_key(order_id: int) -> str:
    return f"earning:{order_id}"

def target_key(courier_id: int, day: date) -> str:
    return f"target:{courier_id}:{day.isoformat()}"


class DistanceIncentiveStrategy(Protocol):
    def incentive(self, assignment: DeliveryAssignment) -> Decimal:
        ...

class NoDistanceIncentive:
    # расстояние магазин → клиент пока не известно
    def incentive(self, assignment: DeliveryAssignment) -> Decimal:
        return Decimal("0")


@dataclass
class EarningBreakdown:
    base_fee: Decimal
    percent_fee: Decimal
    distance_incentive: Decimal
    order_total: Decimal

    @property
    def total(self) -> Decimal:
        return money(self.base_fee + self.percent_fee + self.distance_incentive)


def select_tier(tiers: Sequence[TargetTier], completed_count: int) -> Optional[TargetTier]:
    """Первый подходящий уровень при сортировке по min_orders по убыванию."""
    for tier in sorted(tiers, key=lambda t: t.min_orders, reverse=True):
        if completed_count >= tier.min_orders and (tier.max_orders is None or completed_count <= tier.max_orders):
            return tier
    return None

def next_tier(tiers: Sequence[TargetTier], completed_count: int) -> Optional[TargetTier]:
    for tier in sorted(tiers, key=lambda t: t.min_orders):
        if completed_count < tier.min_orders:
            return tier
    return None


class EarningsLedger:
    def __init__(
        self,
        settings: Optional[DeliverySettings] = None,
        incentive: Optional[DistanceIncentiveStrategy] = None,
    ):
        self.settings = settings or current_settings()
        self.incentive = incentive or NoDistanceIncentive()

    # ---------- helpers ----------
    def _insert_once(self, tx: WalletTransaction) -> Tuple[WalletTransaction, bool]:
        try:
            with db.session.begin_nested():
                db.session.add(tx)
        except IntegrityError:
            existing = db.session.scalar(
                select(WalletTransaction).where(WalletTransaction.dedupe_key == tx.dedupe_key)
            )
            if existing is None:
                raise
            return existing, False
        return tx, True

    def _exists(self, dedupe_key: str) -> bool:
        return db.session.scalar(
            select(WalletTransaction.id).where(WalletTransaction.dedupe_key == dedupe_key)
        ) is not None

    def completed_count(self, courier_id: int, day: date) -> int:
        return int(db.session.scalar(
            select(func.count(func.distinct(WalletTransaction.order_id))).where(
                WalletTransaction.courier_id == courier_id,
                WalletTransaction.type == WalletTxType.EARNING.value,
                WalletTransaction.business_date == day,
            )
        ) or 0)

    def compute(self, assignment: DeliveryAssignment) -> EarningBreakdown:
        total = money(assignment.total_amount)
        return EarningBreakdown(
            base_fee=money(self.settings.base_fee),
            percent_fee=money(total * self.settings.percent_fee),
            distance_incentive=money(self.incentive.incentive(assignment)),
            order_total=total,
        )

    # ---------- operations ----------
    def credit_earning(self, assignment_id: int) -> Optional[WalletTransaction]:
        """Начислить за доставленный заказ. Повторный вызов ничего не делает и возвращает None."""
        row = db.session.get(DeliveryAssignment, assignment_id)
        if row is None:
            raise NotFoundError("Delivery order not found", details={"assignmentId": assignment_id})
        if row.status != DeliveryStatus.DELIVERED.value:
            raise ConflictError("Earning is credited only for delivered orders",
                                details={"assignmentId": assignment_id, "status": row.status})

        key = earning_key(row.order_id)
        if self._exists(key):
            return None

        parts = self.compute(row)
        delivered_at = row.delivered_at or utcnow()
        tx, created = self._insert_once(WalletTransaction(
            courier_id=row.courier_id,
            order_id=row.order_id,
            type=WalletTxType.EARNING.value,
            amount=parts.total,
            meta={
                "baseFee": float(parts.base_fee),
                "percentFee": float(parts.percent_fee),
                "distanceIncentive": float(parts.distance_incentive),
                "orderTotal": float(parts.order_total),
                "deliveredAt": delivered_at.isoformat(),
            },
            business_date=self.settings.business_date(delivered_at),
            dedupe_key=key,
        ))
        db.session.commit()
        if not created:
            return None

        log.info("earning credited", extra={
            "event": "earning_credited", "order_id": row.order_id, "assignment_id": row.id,
            "courier_id": row.courier_id, "amount": str(tx.amount),
        })
        try:
            self.evaluate_target_bonus(row.courier_id, tx.business_date)
        except Exception:  # noqa: BLE001  бонус не откатывает начисление
            db.session.rollback()
            log.warning("target bonus evaluation failed", exc_info=True, extra={
                "event": "target_bonus_failed", "courier_id": row.courier_id, "order_id": row.order_id,
            })
        return tx

    def evaluate_target_bonus(self, courier_id: int, day: Optional[date] = None) -> Optional[WalletTransaction]:
        tiers = active_tiers()
        if not tiers:
            return None
        day = day or self.settings.business_date()
        key = target_key(courier_id, day)
        if self._exists(key):
            return None

        completed = self.completed_count(courier_id, day)
        tier = select_tier(tiers, completed)
        if tier is None or money(tier.bonus_amount) <= 0:
            return None

        tx, created = self._insert_once(WalletTransaction(
            courier_id=courier_id,
            order_id=None,
            type=WalletTxType.BONUS.value,
            amount=money(tier.bonus_amount),
            meta={
                "bonusType": "target",
                "tierId": tier.id,
                "tierName": tier.tier_name,
                "minOrders": tier.min_orders,
                "maxOrders": tier.max_orders,
                "completedCount": completed,
                "date": day.isoformat(),
            },
            business_date=day,
            dedupe_key=key,
        ))
        db.session.commit()
        if not created:
            return None
        log.info("target bonus credited", extra={
            "event": "target_bonus_credited", "courier_id": courier_id,
            "tier_id": tier.id, "amount": str(tx.amount),
        })
        return tx

    # ---------- кошелёк ----------
    def wallet_summary(self, courier_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.settings.business_date()
        earning = WalletTransaction.type == WalletTxType.EARNING.value

        def _sum_since(since: Optional[date]):
            q = select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
                WalletTransaction.courier_id == courier_id, earning,
            )
            if since is not None:
                q = q.where(WalletTransaction.business_date >= since, WalletTransaction.business_date <= today)
            return money(db.session.scalar(q))

        balance = money(db.session.scalar(
            select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(WalletTransaction.courier_id == courier_id)
        ))
        completed = db.session.scalar(
            select(func.count(func.distinct(WalletTransaction.order_id))).where(
                WalletTransaction.courier_id == courier_id, earning,
            )
        ) or 0
        return {
            "balance": balance,
            "today_earnings": _sum_since(today),
            "week_earnings": _sum_since(today - timedelta(days=6)),
            "month_earnings": _sum_since(today.replace(day=1)),
            "completed_deliveries": int(completed),
        }

    def list_transactions(self, courier_id: int, page: int = 1, limit: int = 20,
                          tx_type: Optional[str] = None) -> Dict[str, Any]:
        q = select(WalletTransaction).where(WalletTransaction.courier_id == courier_id)
        if tx_type:
            if tx_type not in TX_TYPES:
                raise ValidationError("Invalid transaction type", details={"type": tx_type, "allowed": sorted(TX_TYPES)})
            q = q.where(WalletTransaction.type == tx_type)
        total = db.session.scalar(select(func.count()).select_from(q.subquery())) or 0
        rows = db.session.scalars(
            q.order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
            .offset((page - 1) * limit).limit(limit)
        ).all()
        return {
            "transactions": rows,
            "pagination": {"page": page, "limit": limit, "total": total, "total_pages": ceil(total / limit) if limit else 0},
        }

    def daily_progress(self, courier_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.settings.business_date()
        tiers = active_tiers()
        completed = self.completed_count(courier_id, today)
        return {
            "completed_count": completed,
            "tiers": tiers,
            "current_tier": select_tier(tiers, completed),
            "next_tier": next_tier(tiers, completed),
            "bonus_already_credited": self._exists(target_key(courier_id, today)),
        }


# ===== уровни целей (админка) =====
def list_tiers() -> List[TargetTier]:
    return db.session.scalars(
        select(TargetTier).order_by(TargetTier.display_order.asc(), TargetTier.min_orders.asc())
    ).all()

def active_tiers() -> List[TargetTier]:
    return db.session.scalars(
        select(TargetTier).where(TargetTier.is_active.is_(True))
        .order_by(TargetTier.display_order.asc(), TargetTier.min_orders.asc())
    ).all()

def _validate_tier(min_orders: int, max_orders: Optional[int], bonus_amount) -> None:
    if min_orders is None or min_orders < 0:
        raise ValidationError("minOrders is required and must be >= 0")
    if max_orders is not None and max_orders < min_orders:
        raise ValidationError("maxOrders must be >= minOrders")
    if bonus_amount is None or Decimal(str(bonus_amount)) < 0:
        raise ValidationError("bonusAmount is required and must be >= 0")

def upsert_tier(data: Dict[str, Any], tier_id: Optional[int] = None) -> Tuple[TargetTier, bool]:
    _validate_tier(data.get("min_orders"), data.get("max_orders"), data.get("bonus_amount"))
    tier_id = tier_id or data.get("id")
    if tier_id:
        tier = db.session.get(TargetTier, tier_id)
        if not tier:
            raise NotFoundError("Target tier not found", details={"tierId": tier_id})
        created = False
    else:
        tier = TargetTier()
        db.session.add(tier)
        created = True
    tier.min_orders = data["min_orders"]
    tier.max_orders = data.get("max_orders")
    tier.bonus_amount = money(data["bonus_amount"])
    tier.tier_name = data.get("tier_name")
    tier.is_active = data.get("is_active", True) is not False
    tier.display_order = data.get("display_order") or 0
    db.session.commit()
    return tier, created

def delete_tier(tier_id: int) -> None:
    tier = db.session.get(TargetTier, tier_id)
    if not tier:
        raise NotFoundError("Target tier not found", details={"tierId": tier_id})
    db.session.delete(tier)
    db.session.commit()
