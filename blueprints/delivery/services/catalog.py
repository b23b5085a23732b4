# blueprints/delivery/services/catalog.py
"""Внешние коллабораторы: каталог заказов и реестр курьеров. Только чтение."""
from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select

from extensions import db
from models import Order, OrderItem, User, UserRole
from blueprints.core.errors import NotFoundError


@dataclass
class OrderSnapshot:
    order_id: int
    customer_name: str
    customer_phone: str
    customer_address: str
    delivery_date: Optional[date]
    delivery_time: Optional[str]
    total_amount: Decimal
    items_count: int


def format_address(raw) -> str:
    """Адрес в заказе бывает строкой или JSON-объектом: приводим к одной строке."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return raw
    if isinstance(raw, dict):
        return ", ".join(str(v) for v in raw.values() if v not in (None, ""))
    return str(raw)


class OrderCatalog:
    def get(self, order_id: int) -> Optional[Order]:
        return db.session.get(Order, order_id)

    def exists(self, order_id: int) -> bool:
        return db.session.scalar(select(Order.id).where(Order.id == order_id)) is not None

    def items_count(self, order_id: int) -> int:
        return int(db.session.scalar(
            select(func.coalesce(func.sum(OrderItem.quantity), 0)).where(OrderItem.order_id == order_id)
        ) or 0)

    def totals(self, order_id: int) -> Tuple[Decimal, int]:
        order = self.get(order_id)
        if not order:
            raise NotFoundError("Order not found", details={"orderId": order_id})
        return Decimal(str(order.total_amount or 0)), self.items_count(order_id)

    def snapshot(self, order_id: int) -> Optional[OrderSnapshot]:
        order = self.get(order_id)
        if not order:
            return None
        return OrderSnapshot(
            order_id=order.id,
            customer_name=order.customer_name or "N/A",
            customer_phone=order.customer_phone or "N/A",
            customer_address=format_address(order.delivery_address),
            delivery_date=order.delivery_date,
            delivery_time=order.delivery_time,
            total_amount=Decimal(str(order.total_amount or 0)),
            items_count=self.items_count(order.id),
        )


class CourierRegistry:
    def active_courier(self, courier_id: int) -> User:
        user = db.session.scalar(
            select(User).where(
                User.id == courier_id,
                User.role == UserRole.COURIER.value,
                User.is_active.is_(True),
            )
        )
        if not user:
            raise NotFoundError("Courier not found or inactive", details={"courierId": courier_id})
        return user

    def list_active(self) -> List[User]:
        return db.session.scalars(
            select(User)
            .where(User.role == UserRole.COURIER.value, User.is_active.is_(True))
            .order_by(User.name.asc())
        ).all()
