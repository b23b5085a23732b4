from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, Field, model_validator

from blueprints.core.schemas import CamelModel

Priority = Literal["low", "medium", "high"]

# в старом клиенте курьер называется deliveryBoyId
_COURIER_ALIASES = AliasChoices("courierId", "courier_id", "deliveryBoyId", "delivery_boy_id")


class CoordinatesIn(CamelModel):
    lat: float = Field(ge=-90, le=90, validation_alias=AliasChoices("lat", "latitude"))
    lng: float = Field(ge=-180, le=180, validation_alias=AliasChoices("lng", "longitude"))


# ---------- назначение ----------
class AssignIn(CamelModel):
    order_id: int = Field(ge=1)
    courier_id: int = Field(ge=1, validation_alias=_COURIER_ALIASES)
    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: str = Field(min_length=1, max_length=32)
    customer_address: str = Field(min_length=1)
    delivery_date: date
    delivery_time: str = Field(min_length=1, max_length=20)
    priority: Optional[Priority] = None
    special_instructions: Optional[str] = None
    coordinates: Optional[CoordinatesIn] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    items_count: Optional[int] = Field(None, ge=0)

    def snapshot(self) -> Dict[str, Any]:
        snap = self.model_dump(
            include={"customer_name", "customer_phone", "customer_address", "delivery_date",
                     "delivery_time", "special_instructions"},
        )
        if self.coordinates is not None:
            snap.update(delivery_latitude=self.coordinates.lat, delivery_longitude=self.coordinates.lng)
        # None = «не передано»: тогда сумму и количество возьмём из заказа
        if self.total_amount is not None:
            snap["total_amount"] = self.total_amount
        if self.items_count is not None:
            snap["items_count"] = self.items_count
        return snap


class BulkAssignIn(CamelModel):
    order_ids: List[int] = Field(min_length=1)
    courier_id: int = Field(ge=1, validation_alias=_COURIER_ALIASES)
    priority: Optional[Priority] = None


class ReassignIn(CamelModel):
    courier_id: int = Field(ge=1, validation_alias=_COURIER_ALIASES)
    reason: Optional[str] = Field(None, max_length=255)


class StatusIn(CamelModel):
    status: str = Field(min_length=1)
    delivery_photo_url: Optional[str] = Field(None, max_length=500)
    coordinates: Optional[CoordinatesIn] = None


class TrackIn(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)


class TierIn(CamelModel):
    id: Optional[int] = None
    min_orders: int = Field(ge=0)
    max_orders: Optional[int] = Field(None, ge=0)
    bonus_amount: Decimal = Field(ge=0)
    tier_name: Optional[str] = Field(None, max_length=100)
    is_active: bool = True
    display_order: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_range(self):
        if self.max_orders is not None and self.max_orders < self.min_orders:
            raise ValueError("maxOrders must be >= minOrders")
        return self


# ---------- ответы ----------
class AssignmentOut(CamelModel):
    id: int
    order_id: int
    courier_id: int
    courier_name: Optional[str] = None
    status: str
    priority: str
    customer_name: str
    customer_phone: str
    customer_address: str
    delivery_date: Optional[date]
    delivery_time: Optional[str]
    special_instructions: Optional[str]
    total_amount: float
    items_count: int
    delivery_photo_url: Optional[str]
    delivery_latitude: Optional[float]
    delivery_longitude: Optional[float]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class FailedItemOut(CamelModel):
    order_id: Any
    reason: str


class BulkResultOut(CamelModel):
    assigned: List[int]
    updated: List[int]
    failed: List[FailedItemOut]


class ReassignOut(CamelModel):
    order_id: int
    old_courier_id: Optional[int]
    new_courier_id: int


class HistoryEntryOut(CamelModel):
    id: int
    order_id: int
    old_courier_id: Optional[int]
    old_courier_name: str
    new_courier_id: Optional[int]
    new_courier_name: str
    reason: str
    created_at: datetime


class WorkloadOut(CamelModel):
    courier_id: int
    courier_name: str
    courier_email: str
    contact_number: Optional[str]
    total_orders: int
    assigned_count: int
    picked_up_count: int
    in_transit_count: int
    delivered_count: int


class OrderAssignmentOut(CamelModel):
    assignment_id: int
    courier_id: int
    courier_name: Optional[str]
    courier_email: Optional[str]
    status: str
    priority: str
    assigned_at: datetime


class CourierOut(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str]
    role: str
    is_active: bool
    created_at: datetime


class CourierStatsOut(CamelModel):
    total_orders: int
    completed_orders: int
    pending_orders: int
    total_earnings: float


class TrackingOut(CamelModel):
    id: int
    assignment_id: int
    latitude: float
    longitude: float
    accuracy: Optional[float]
    created_at: datetime


# ---------- кошелёк и цели ----------
class WalletTxOut(CamelModel):
    id: int
    order_id: Optional[int]
    type: str
    amount: float
    meta: Optional[Dict[str, Any]]
    business_date: date
    created_at: datetime


class PaginationOut(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class WalletTxPageOut(CamelModel):
    transactions: List[WalletTxOut]
    pagination: PaginationOut


class WalletSummaryOut(CamelModel):
    balance: float
    today_earnings: float
    week_earnings: float
    month_earnings: float
    completed_deliveries: int


class TierOut(CamelModel):
    id: int
    min_orders: int
    max_orders: Optional[int]
    bonus_amount: float
    tier_name: Optional[str]
    is_active: bool
    display_order: int


class ProgressOut(CamelModel):
    completed_count: int
    tiers: List[TierOut]
    current_tier: Optional[TierOut]
    next_tier: Optional[TierOut]
    bonus_already_credited: bool
