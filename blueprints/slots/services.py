# blueprints/slots/services.py
"""Ёмкость слотов доставки по датам и CRUD самих слотов.

Строка доступности (slot_id, delivery_date) создаётся лениво: чтение
подставляет значения по умолчанию, не записывая их; decrement и
административное переопределение создают строку при первом обращении.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import DeliverySlot, Order, SlotAvailability, utcnow
from blueprints.core.errors import ConflictError, NotFoundError, ValidationError
from blueprints.delivery.settings import DeliverySettings, current_settings

log = logging.getLogger(__name__)


# ===== DTO =====
@dataclass
class Availability:
    id: Optional[int]
    slot_id: int
    slot_name: str
    start_time: time
    end_time: time
    delivery_date: date
    available_orders: int
    is_available: bool
    max_orders: int
    display_order_limit: int
    thresholds: Dict[str, int] = field(default_factory=dict)

@dataclass
class DecrementResult:
    slot_id: int
    delivery_date: date
    quantity: int
    previous: int
    new: int

def daterange(d_from: date, d_to: date) -> Iterable[date]:
    d = d_from
    while d <= d_to:
        yield d
        d += timedelta(days=1)

def _availability(slot: DeliverySlot, d: date, row: Optional[SlotAvailability]) -> Availability:
    thresholds = {"high": slot.threshold_high, "medium": slot.threshold_medium}
    if row is None:
        return Availability(
            id=None, slot_id=slot.id, slot_name=slot.name,
            start_time=slot.start_time, end_time=slot.end_time, delivery_date=d,
            available_orders=slot.display_order_limit, is_available=True,
            max_orders=slot.default_max_orders, display_order_limit=slot.display_order_limit,
            thresholds=thresholds,
        )
    return Availability(
        id=row.id, slot_id=slot.id, slot_name=slot.name,
        start_time=slot.start_time, end_time=slot.end_time, delivery_date=d,
        available_orders=row.available_orders, is_available=bool(row.is_available),
        max_orders=row.max_orders if row.max_orders is not None else slot.default_max_orders,
        display_order_limit=slot.display_order_limit,
        thresholds=thresholds,
    )


class SlotCapacityManager:
    """Остаток заказов на слот × дату. Не опускается ниже нуля даже при параллельных вызовах."""

    def __init__(self, settings: Optional[DeliverySettings] = None):
        self.settings = settings or current_settings()

    # ---------- helpers ----------
    def _slot(self, slot_id: int) -> DeliverySlot:
        slot = db.session.get(DeliverySlot, slot_id)
        if not slot:
            raise NotFoundError("Delivery slot not found", details={"slotId": slot_id})
        return slot

    @staticmethod
    def _row_filter(slot_id: int, d: date):
        return (SlotAvailability.slot_id == slot_id, SlotAvailability.delivery_date == d)

    def _locked_row(self, slot_id: int, d: date) -> Optional[SlotAvailability]:
        return db.session.execute(
            select(SlotAvailability).where(*self._row_filter(slot_id, d)).with_for_update()
        ).scalar_one_or_none()

    def _ensure_row(self, slot: DeliverySlot, d: date, **values) -> bool:
        """Вставка строки по умолчанию, если её ещё нет. True, если вставили мы."""
        exists = db.session.execute(
            select(SlotAvailability.id).where(*self._row_filter(slot.id, d))
        ).scalar_one_or_none()
        if exists is not None:
            return False
        values.setdefault("available_orders", slot.display_order_limit)
        values.setdefault("is_available", True)
        try:
            with db.session.begin_nested():
                db.session.add(SlotAvailability(slot_id=slot.id, delivery_date=d, **values))
        except IntegrityError:
            # параллельный вызов успел создать строку: работаем с ней
            return False
        return True

    # ---------- read ----------
    def get_availability(self, start: date, end: date) -> List[Availability]:
        if end < start:
            raise ValidationError("startDate must be on or before endDate",
                                  details={"startDate": start.isoformat(), "endDate": end.isoformat()})
        if (end - start).days + 1 > self.settings.max_range_days:
            raise ValidationError(f"Date range must not exceed {self.settings.max_range_days} days")

        slots = (
            DeliverySlot.query.filter_by(is_active=True)
            .order_by(DeliverySlot.start_time.asc(), DeliverySlot.display_order.asc())
            .all()
        )
        rows = db.session.execute(
            select(SlotAvailability).where(SlotAvailability.delivery_date.between(start, end))
        ).scalars().all()
        by_key = {(r.slot_id, r.delivery_date): r for r in rows}

        out: List[Availability] = []
        for d in daterange(start, end):
            for slot in slots:
                out.append(_availability(slot, d, by_key.get((slot.id, d))))
        return out

    # ---------- write ----------
    def decrement(self, slot_id: int, delivery_date: date, quantity: int = 1) -> DecrementResult:
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})
        slot = self._slot(slot_id)
        self._ensure_row(slot, delivery_date)

        previous = db.session.execute(
            select(SlotAvailability.available_orders)
            .where(*self._row_filter(slot_id, delivery_date))
            .with_for_update()
        ).scalar_one()
        db.session.execute(
            update(SlotAvailability)
            .where(*self._row_filter(slot_id, delivery_date))
            .values(
                available_orders=case(
                    (SlotAvailability.available_orders > quantity, SlotAvailability.available_orders - quantity),
                    else_=0,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        new = db.session.execute(
            select(SlotAvailability.available_orders).where(*self._row_filter(slot_id, delivery_date))
        ).scalar_one()
        db.session.commit()

        log.info("slot capacity decremented", extra={
            "event": "slot_decrement", "slot_id": slot_id, "delivery_date": delivery_date.isoformat(),
            "quantity": quantity, "previous": previous, "new": new,
        })
        return DecrementResult(slot_id=slot_id, delivery_date=delivery_date, quantity=quantity,
                               previous=previous, new=new)

    def set_availability(
        self,
        slot_id: int,
        delivery_date: date,
        *,
        max_orders: Optional[int] = None,
        available_orders: Optional[int] = None,
        is_available: Optional[bool] = None,
    ) -> Availability:
        slot = self._slot(slot_id)
        row = self._locked_row(slot_id, delivery_date)

        if max_orders is not None:
            effective_max = max_orders
        elif row is not None and row.max_orders is not None:
            effective_max = row.max_orders
        else:
            effective_max = slot.default_max_orders

        if available_orders is not None and available_orders < 0:
            raise ValidationError("Available orders cannot be negative")
        if available_orders is not None and available_orders > effective_max:
            raise ValidationError(
                f"Available orders ({available_orders}) cannot exceed max orders ({effective_max})",
                details={"availableOrders": available_orders, "maxOrders": effective_max},
            )

        if row is None:
            inserted = self._ensure_row(
                slot, delivery_date,
                available_orders=(
                    available_orders if available_orders is not None
                    else min(slot.display_order_limit, effective_max)
                ),
                is_available=True if is_available is None else is_available,
                max_orders=max_orders,
            )
            row = self._locked_row(slot_id, delivery_date)
            if inserted:
                db.session.commit()
                return _availability(slot, delivery_date, row)

        if max_orders is not None:
            row.max_orders = max_orders
        if available_orders is not None:
            row.available_orders = available_orders
        elif row.available_orders > effective_max:
            row.available_orders = effective_max
        if is_available is not None:
            row.is_available = is_available
        db.session.commit()
        return _availability(slot, delivery_date, row)


# ===== CRUD слотов =====
def list_slots(active: Optional[bool] = None) -> List[DeliverySlot]:
    q = DeliverySlot.query
    if active is not None:
        q = q.filter(DeliverySlot.is_active.is_(active))
    return q.order_by(DeliverySlot.display_order.asc(), DeliverySlot.start_time.asc()).all()

def get_slot(slot_id: int) -> DeliverySlot:
    slot = db.session.get(DeliverySlot, slot_id)
    if not slot:
        raise NotFoundError("Delivery slot not found", details={"slotId": slot_id})
    return slot

def _check_name_free(name: str, exclude_id: Optional[int] = None) -> None:
    q = DeliverySlot.query.filter(DeliverySlot.name == name)
    if exclude_id is not None:
        q = q.filter(DeliverySlot.id != exclude_id)
    if q.first():
        raise ValidationError("Slot name already exists", details={"field": "name"})

def _check_slot_numbers(slot: DeliverySlot) -> None:
    if slot.end_time <= slot.start_time:
        raise ValidationError("end_time must be > start_time")
    if slot.display_order_limit > slot.default_max_orders:
        raise ValidationError(
            f"Display order limit ({slot.display_order_limit}) cannot exceed max orders ({slot.default_max_orders})"
        )

def create_slot(data: Dict[str, Any], settings: Optional[DeliverySettings] = None) -> DeliverySlot:
    settings = settings or current_settings()
    _check_name_free(data["name"])
    slot = DeliverySlot(
        name=data["name"],
        start_time=data["start_time"],
        end_time=data["end_time"],
        default_max_orders=data.get("default_max_orders") or settings.default_max_orders,
        display_order_limit=(
            data["display_order_limit"] if data.get("display_order_limit") is not None
            else settings.default_display_limit
        ),
        threshold_high=data.get("threshold_high") if data.get("threshold_high") is not None else settings.threshold_high,
        threshold_medium=(
            data.get("threshold_medium") if data.get("threshold_medium") is not None else settings.threshold_medium
        ),
        display_order=data.get("display_order") or 0,
        is_active=data.get("is_active", True),
    )
    _check_slot_numbers(slot)
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Slot name already exists", details={"field": "name"})
    return slot

def update_slot(slot_id: int, data: Dict[str, Any]) -> DeliverySlot:
    slot = get_slot(slot_id)
    if data.get("name") and data["name"] != slot.name:
        _check_name_free(data["name"], exclude_id=slot.id)
    for key, val in data.items():
        if val is not None and hasattr(slot, key):
            setattr(slot, key, val)
    _check_slot_numbers(slot)
    if data.get("default_max_orders") is not None:
        # строки без своего max_orders живут от default_max_orders слота
        db.session.execute(
            update(SlotAvailability)
            .where(
                SlotAvailability.slot_id == slot.id,
                SlotAvailability.max_orders.is_(None),
                SlotAvailability.available_orders > slot.default_max_orders,
            )
            .values(available_orders=slot.default_max_orders)
            .execution_options(synchronize_session=False)
        )
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Slot name already exists", details={"field": "name"})
    return slot

def delete_slot(slot_id: int) -> None:
    slot = get_slot(slot_id)
    used = db.session.scalar(select(func.count(Order.id)).where(Order.delivery_slot_id == slot.id))
    if used:
        raise ConflictError("Cannot delete slot that has associated orders", details={"orders": used})
    SlotAvailability.query.filter_by(slot_id=slot.id).delete(synchronize_session=False)
    db.session.delete(slot)
    db.session.commit()

def toggle_slot(slot_id: int) -> DeliverySlot:
    slot = get_slot(slot_id)
    slot.is_active = not slot.is_active
    db.session.commit()
    return slot

def slot_stats() -> Dict[str, int]:
    total, active, avg_max = db.session.execute(
        select(
            func.count(DeliverySlot.id),
            func.coalesce(func.sum(case((DeliverySlot.is_active.is_(True), 1), else_=0)), 0),
            func.avg(DeliverySlot.default_max_orders),
        )
    ).one()
    return {
        "total_slots": int(total or 0),
        "active_slots": int(active or 0),
        "inactive_slots": int(total or 0) - int(active or 0),
        "avg_max_orders": int(round(float(avg_max or 0))),
    }
