# blueprints/delivery/services/assignment.py
"""Назначение заказов курьерам.

На заказ: не больше одной строки в delivery_orders (unique order_id).
Вставка идёт в SAVEPOINT; IntegrityError значит, что строку успел создать
параллельный запрос, и мы обновляем её под блокировкой.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import aliased

from extensions import db
from models import (
    AssignmentHistory, DeliveryAssignment, DeliveryPriority, DeliveryStatus, User,
)
from blueprints.core.errors import NotFoundError, ValidationError
from blueprints.delivery.settings import DeliverySettings, current_settings
from .catalog import CourierRegistry, OrderCatalog

log = logging.getLogger(__name__)

DEFAULT_REASSIGN_REASON = "Reassigned by admin"
INITIAL_ASSIGNMENT_REASON = "Initial assignment"

SNAPSHOT_FIELDS = (
    "customer_name", "customer_phone", "customer_address",
    "delivery_date", "delivery_time", "special_instructions",
    "delivery_latitude", "delivery_longitude",
)
PRIORITIES = {p.value for p in DeliveryPriority}


# ===== DTO =====
@dataclass
class BulkResult:
    assigned: List[int] = field(default_factory=list)
    updated: List[int] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

@dataclass
class ReassignResult:
    order_id: int
    old_courier_id: Optional[int]
    new_courier_id: int
    assignment: DeliveryAssignment

@dataclass
class HistoryEntry:
    id: int
    order_id: int
    old_courier_id: Optional[int]
    old_courier_name: str
    new_courier_id: Optional[int]
    new_courier_name: str
    reason: str
    created_at: Any


def resolve_snapshot_totals(
    order_id: int,
    total_amount: Optional[Decimal | float | int | str],
    items_count: Optional[int],
    catalog: OrderCatalog,
) -> Tuple[Decimal, int]:
    """Единственное правило для total_amount/items_count снимка.

    Явно переданное значение (в том числе 0) берётся как есть; только
    отсутствующее подтягивается из каталога заказов. Дальше снимок не
    пересчитывается: ни при чтении, ни при переназначении.
    """
    if total_amount is not None and items_count is not None:
        return Decimal(str(total_amount)), int(items_count)
    cat_total, cat_items = catalog.totals(order_id)
    return (
        Decimal(str(total_amount)) if total_amount is not None else cat_total,
        int(items_count) if items_count is not None else cat_items,
    )


class AssignmentCoordinator:
    def __init__(
        self,
        settings: Optional[DeliverySettings] = None,
        catalog: Optional[OrderCatalog] = None,
        couriers: Optional[CourierRegistry] = None,
    ):
        self.settings = settings or current_settings()
        self.catalog = catalog or OrderCatalog()
        self.couriers = couriers or CourierRegistry()

    # ---------- helpers ----------
    def _locked(self, order_id: int) -> Optional[DeliveryAssignment]:
        return db.session.execute(
            select(DeliveryAssignment).where(DeliveryAssignment.order_id == order_id).with_for_update()
        ).scalar_one_or_none()

    def _priority(self, priority: Optional[str]) -> str:
        priority = priority or self.settings.default_priority
        if priority not in PRIORITIES:
            raise ValidationError("Invalid priority", details={"priority": priority, "allowed": sorted(PRIORITIES)})
        return priority

    def _upsert(self, order_id: int, courier_id: int, values: Dict[str, Any]) -> Tuple[DeliveryAssignment, bool]:
        existing = self._locked(order_id)
        if existing is None:
            row = DeliveryAssignment(
                order_id=order_id, courier_id=courier_id, status=DeliveryStatus.ASSIGNED.value, **values
            )
            try:
                with db.session.begin_nested():
                    db.session.add(row)
                return row, True
            except IntegrityError:
                existing = self._locked(order_id)
                if existing is None:
                    raise
        existing.courier_id = courier_id
        for key, val in values.items():
            setattr(existing, key, val)
        existing.status = DeliveryStatus.ASSIGNED.value
        existing.delivered_at = None
        existing.cancelled_at = None
        db.session.flush()
        return existing, False

    # ---------- operations ----------
    def assign_or_update(
        self,
        order_id: int,
        courier_id: int,
        snapshot: Optional[Dict[str, Any]] = None,
        *,
        priority: Optional[str] = None,
    ) -> Tuple[DeliveryAssignment, bool]:
        """Создать назначение или перезаписать существующее. Возвращает (строка, создана_ли)."""
        snapshot = dict(snapshot or {})
        courier = self.couriers.active_courier(courier_id)
        if not self.catalog.exists(order_id):
            raise NotFoundError("Order not found", details={"orderId": order_id})

        total, items = resolve_snapshot_totals(
            order_id, snapshot.pop("total_amount", None), snapshot.pop("items_count", None), self.catalog
        )
        values = {k: snapshot.get(k) for k in SNAPSHOT_FIELDS if k in snapshot}
        values.update(total_amount=total, items_count=items, priority=self._priority(priority))

        row, created = self._upsert(order_id, courier.id, values)
        db.session.commit()
        log.info("assignment %s", "created" if created else "updated", extra={
            "event": "assignment_upserted", "order_id": order_id, "courier_id": courier.id,
            "assignment_id": row.id,
        })
        return row, created

    def bulk_assign(self, order_ids: List[int], courier_id: int, priority: Optional[str] = None) -> BulkResult:
        if not order_ids:
            raise ValidationError("Order IDs array is required")
        courier = self.couriers.active_courier(courier_id)
        priority = self._priority(priority)
        today = self.settings.business_date()

        result = BulkResult()
        for oid in order_ids:
            try:
                with db.session.begin_nested():
                    snap = self.catalog.snapshot(oid)
                    if snap is None:
                        raise NotFoundError("Order not found", details={"orderId": oid})
                    _, created = self._upsert(oid, courier.id, {
                        "customer_name": snap.customer_name,
                        "customer_phone": snap.customer_phone,
                        "customer_address": snap.customer_address,
                        "delivery_date": snap.delivery_date or today,
                        "delivery_time": snap.delivery_time or self.settings.default_delivery_time,
                        "total_amount": snap.total_amount,
                        "items_count": snap.items_count,
                        "priority": priority,
                    })
            # один заказ не должен ронять всю пачку
            except Exception as ex:  # noqa: BLE001
                reason = getattr(ex, "message", None) or str(ex) or ex.__class__.__name__
                log.warning("bulk assign item failed", extra={
                    "event": "bulk_assign_item_failed", "order_id": oid, "courier_id": courier.id, "error": reason,
                })
                result.failed.append({"order_id": oid, "reason": reason})
                continue
            (result.assigned if created else result.updated).append(oid)

        db.session.commit()
        return result

    def _write_history(self, order_id: int, old_courier_id: Optional[int], new_courier_id: int, reason: str) -> None:
        db.session.add(AssignmentHistory(
            order_id=order_id, old_courier_id=old_courier_id, new_courier_id=new_courier_id, reason=reason,
        ))
        db.session.flush()

    def reassign(self, order_id: int, new_courier_id: int, reason: Optional[str] = None) -> ReassignResult:
        courier = self.couriers.active_courier(new_courier_id)
        row = self._locked(order_id)
        if row is None:
            raise NotFoundError("Order is not assigned to any courier", details={"orderId": order_id})

        old_courier_id = row.courier_id
        row.courier_id = courier.id
        row.status = DeliveryStatus.ASSIGNED.value
        row.delivered_at = None
        row.cancelled_at = None
        db.session.flush()

        try:
            with db.session.begin_nested():
                self._write_history(order_id, old_courier_id, courier.id, reason or DEFAULT_REASSIGN_REASON)
        except SQLAlchemyError:
            log.warning("assignment history write failed", exc_info=True, extra={
                "event": "history_write_failed", "order_id": order_id,
                "old_courier_id": old_courier_id, "new_courier_id": courier.id,
            })

        db.session.commit()
        log.info("order reassigned", extra={
            "event": "assignment_reassigned", "order_id": order_id,
            "old_courier_id": old_courier_id, "new_courier_id": courier.id,
        })
        return ReassignResult(order_id=order_id, old_courier_id=old_courier_id,
                              new_courier_id=courier.id, assignment=row)

    def get_assignment_history(self, order_id: int) -> List[HistoryEntry]:
        old_u = aliased(User)
        new_u = aliased(User)
        rows = db.session.execute(
            select(AssignmentHistory, old_u.name, new_u.name)
            .outerjoin(old_u, AssignmentHistory.old_courier_id == old_u.id)
            .outerjoin(new_u, AssignmentHistory.new_courier_id == new_u.id)
            .where(AssignmentHistory.order_id == order_id)
            .order_by(AssignmentHistory.created_at.desc(), AssignmentHistory.id.desc())
        ).all()
        if rows:
            return [
                HistoryEntry(
                    id=h.id, order_id=h.order_id,
                    old_courier_id=h.old_courier_id, old_courier_name=old_name or "N/A",
                    new_courier_id=h.new_courier_id, new_courier_name=new_name or "N/A",
                    reason=h.reason or "Assignment", created_at=h.created_at,
                )
                for h, old_name, new_name in rows
            ]

        # истории нет (данные до появления журнала): показываем текущее назначение
        current = db.session.scalar(select(DeliveryAssignment).where(DeliveryAssignment.order_id == order_id))
        if current is None:
            return []
        return [HistoryEntry(
            id=current.id, order_id=current.order_id,
            old_courier_id=None, old_courier_name="N/A",
            new_courier_id=current.courier_id, new_courier_name=current.courier_name or "N/A",
            reason=INITIAL_ASSIGNMENT_REASON, created_at=current.created_at,
        )]


# ===== чтение для админки и курьера =====
def get_assignment(assignment_id: int) -> DeliveryAssignment:
    row = db.session.get(DeliveryAssignment, assignment_id)
    if not row:
        raise NotFoundError("Delivery order not found", details={"assignmentId": assignment_id})
    return row

def get_order_assignment(order_id: int) -> Optional[Dict[str, Any]]:
    row = db.session.scalar(select(DeliveryAssignment).where(DeliveryAssignment.order_id == order_id))
    if row is None:
        return None
    return {
        "assignment_id": row.id,
        "courier_id": row.courier_id,
        "courier_name": row.courier.name if row.courier else None,
        "courier_email": row.courier.email if row.courier else None,
        "status": row.status,
        "priority": row.priority,
        "assigned_at": row.created_at,
    }

def list_courier_orders(courier_id: int, status: Optional[str] = None, delivery_date=None) -> List[DeliveryAssignment]:
    q = select(DeliveryAssignment).where(DeliveryAssignment.courier_id == courier_id)
    if status:
        if status not in {s.value for s in DeliveryStatus}:
            raise ValidationError("Invalid status", details={"status": status})
        q = q.where(DeliveryAssignment.status == status)
    if delivery_date:
        q = q.where(DeliveryAssignment.delivery_date == delivery_date)
    q = q.order_by(DeliveryAssignment.delivery_date.asc(), DeliveryAssignment.created_at.desc())
    return db.session.scalars(q).all()
