from __future__ import annotations
import re
from datetime import date, time
from typing import Annotated, Optional

from pydantic import AliasChoices, BeforeValidator, Field, model_validator

from blueprints.core.schemas import CamelModel

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


def _check_time(v):
    if isinstance(v, str) and not _TIME_RE.match(v.strip()):
        raise ValueError("Invalid time format. Use HH:MM:SS format")
    return v.strip() if isinstance(v, str) else v


SlotTime = Annotated[time, BeforeValidator(_check_time)]


# ---------- Slots ----------
class SlotIn(CamelModel):
    name: str = Field(min_length=1, max_length=100, validation_alias=AliasChoices("name", "slotName", "slot_name"))
    start_time: SlotTime
    end_time: SlotTime
    default_max_orders: Optional[int] = Field(
        None, ge=1, validation_alias=AliasChoices("defaultMaxOrders", "maxOrders", "default_max_orders", "max_orders")
    )
    display_order_limit: Optional[int] = Field(None, ge=0)
    threshold_high: Optional[int] = Field(None, ge=0, le=100)
    threshold_medium: Optional[int] = Field(None, ge=0, le=100)
    display_order: int = Field(0, ge=0)
    is_active: bool = True

    @model_validator(mode="after")
    def check_range(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be > start_time")
        return self


class SlotUpdateIn(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100, validation_alias=AliasChoices("name", "slotName", "slot_name"))
    start_time: Optional[SlotTime] = None
    end_time: Optional[SlotTime] = None
    default_max_orders: Optional[int] = Field(
        None, ge=1, validation_alias=AliasChoices("defaultMaxOrders", "maxOrders", "default_max_orders", "max_orders")
    )
    display_order_limit: Optional[int] = Field(None, ge=0)
    threshold_high: Optional[int] = Field(None, ge=0, le=100)
    threshold_medium: Optional[int] = Field(None, ge=0, le=100)
    display_order: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class SlotOut(CamelModel):
    id: int
    name: str
    start_time: time
    end_time: time
    default_max_orders: int
    display_order_limit: int
    threshold_high: int
    threshold_medium: int
    display_order: int
    is_active: bool


class SlotStatsOut(CamelModel):
    total_slots: int
    active_slots: int
    inactive_slots: int
    avg_max_orders: int


# ---------- Availability ----------
class DecrementIn(CamelModel):
    slot_id: int = Field(ge=1)
    delivery_date: date
    quantity: int = Field(1, ge=1)


class AvailabilityOverrideIn(CamelModel):
    slot_id: int = Field(ge=1)
    delivery_date: date
    max_orders: Optional[int] = Field(None, ge=0)
    available_orders: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None


class ThresholdsOut(CamelModel):
    high: int
    medium: int


class AvailabilityOut(CamelModel):
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
    thresholds: ThresholdsOut


class DecrementOut(CamelModel):
    slot_id: int
    delivery_date: date
    quantity: int
    previous: int
    new: int
