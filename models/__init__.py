from __future__ import annotations
from datetime import datetime, time, date, UTC
from decimal import Decimal
from enum import Enum as PyEnum

from flask_login import UserMixin
from sqlalchemy import (
    CheckConstraint, ForeignKey, UniqueConstraint, Index, Boolean, Date, DateTime, Time,
    Integer, Float, Numeric, String, Text, JSON
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from werkzeug.security import generate_password_hash, check_password_hash

from extensions import db


def utcnow() -> datetime:
    # naive UTC, как и раньше хранили в DateTime без tz
    return datetime.now(UTC).replace(tzinfo=None)


# ---------- Enums ----------
class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    COURIER = "COURIER"

class DeliveryStatus(str, PyEnum):
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class DeliveryPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class WalletTxType(str, PyEnum):
    EARNING = "earning"
    BONUS = "bonus"


# ---------- Реестр пользователей (внешний коллаборатор) ----------
class User(UserMixin, db.Model):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(32))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # строковое поле, чтобы не зависеть от конкретного типа БД
    role: Mapped[str] = mapped_column(String(16), nullable=False, index=True, default=UserRole.COURIER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def is_courier(self) -> bool:
        return self.role == UserRole.COURIER.value

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.STAFF.value)

    def __repr__(self):
        return f"<User {self.email} {self.role}>"


# ---------- Заказы (внешний каталог, только чтение) ----------
class Order(db.Model):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str | None] = mapped_column(String(64), unique=True)
    customer_name: Mapped[str | None] = mapped_column(String(255))
    customer_phone: Mapped[str | None] = mapped_column(String(32))
    delivery_address: Mapped[str | None] = mapped_column(Text)
    delivery_date: Mapped[date | None] = mapped_column(Date)
    delivery_time: Mapped[str | None] = mapped_column(String(20))
    delivery_slot_id: Mapped[int | None] = mapped_column(
        ForeignKey("delivery_slots.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Order {self.id}>"


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    order = relationship("Order", back_populates="items")


# ---------- Слоты доставки ----------
class DeliverySlot(db.Model):
    __tablename__ = "delivery_slots"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    default_max_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    display_order_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    threshold_high: Mapped[int] = mapped_column(Integer, nullable=False, default=60)      # %
    threshold_medium: Mapped[int] = mapped_column(Integer, nullable=False, default=85)    # %
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    availabilities = relationship("SlotAvailability", back_populates="slot", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<DeliverySlot {self.name}>"


class SlotAvailability(db.Model):
    __tablename__ = "delivery_slot_availability"

    id: Mapped[int] = mapped_column(primary_key=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("delivery_slots.id", ondelete="CASCADE"), nullable=False)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    available_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # NULL = берём default_max_orders из слота
    max_orders: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    slot = relationship("DeliverySlot", back_populates="availabilities")

    __table_args__ = (
        UniqueConstraint("slot_id", "delivery_date", name="uq_slot_availability_slot_date"),
        CheckConstraint("available_orders >= 0", name="ck_slot_availability_non_negative"),
    )

    @property
    def effective_max_orders(self) -> int:
        if self.max_orders is not None:
            return self.max_orders
        return self.slot.default_max_orders if self.slot else 0


# ---------- Назначения курьеров ----------
class DeliveryAssignment(db.Model):
    __tablename__ = "delivery_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    # не более одного живого назначения на заказ
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    courier_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=DeliveryStatus.ASSIGNED.value, index=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=DeliveryPriority.MEDIUM.value)

    # снимок на момент назначения
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    customer_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    delivery_date: Mapped[date | None] = mapped_column(Date)
    delivery_time: Mapped[str | None] = mapped_column(String(20))
    special_instructions: Mapped[str | None] = mapped_column(Text)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    items_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    delivery_photo_url: Mapped[str | None] = mapped_column(String(500))
    delivery_latitude: Mapped[float | None] = mapped_column(Float)
    delivery_longitude: Mapped[float | None] = mapped_column(Float)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    courier = relationship("User")
    order = relationship("Order")

    @property
    def courier_name(self) -> str | None:
        return self.courier.name if self.courier else None

    __table_args__ = (
        CheckConstraint(
            "status IN ('assigned','picked_up','in_transit','delivered','cancelled')",
            name="ck_delivery_orders_status",
        ),
        Index("ix_delivery_orders_courier_status", "courier_id", "status"),
    )

    def __repr__(self):
        return f"<DeliveryAssignment order={self.order_id} courier={self.courier_id} {self.status}>"


class AssignmentHistory(db.Model):
    __tablename__ = "delivery_assignment_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    old_courier_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    new_courier_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    reason: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class DeliveryTracking(db.Model):
    __tablename__ = "delivery_tracking"

    id: Mapped[int] = mapped_column(primary_key=True)
    assignment_id: Mapped[int] = mapped_column(
        ForeignKey("delivery_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    accuracy: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


# ---------- Кошелёк курьера ----------
class WalletTransaction(db.Model):
    __tablename__ = "delivery_wallet_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    courier_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)  # NULL для бонусов
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    meta: Mapped[dict | None] = mapped_column(JSON)
    # календарный день в поясе доставки: по нему считаем дневные цели
    business_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    # earning:<order_id> | target:<courier_id>:<YYYY-MM-DD>; уникальность = идемпотентность
    dedupe_key: Mapped[str | None] = mapped_column(String(120), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    courier = relationship("User")

    __table_args__ = (
        CheckConstraint("type IN ('earning','bonus')", name="ck_wallet_tx_type"),
        CheckConstraint("amount >= 0", name="ck_wallet_tx_amount"),
        Index("ix_wallet_tx_courier_day_type", "courier_id", "business_date", "type"),
    )


class TargetTier(db.Model):
    __tablename__ = "delivery_target_tiers"

    id: Mapped[int] = mapped_column(primary_key=True)
    min_orders: Mapped[int] = mapped_column(Integer, nullable=False)
    max_orders: Mapped[int | None] = mapped_column(Integer, nullable=True)  # NULL = без верхней границы
    bonus_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tier_name: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<TargetTier {self.tier_name or self.min_orders}>"
