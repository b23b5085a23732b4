# blueprints/delivery/settings.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Any, Mapping, Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from flask import current_app


def _zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        try:
            import tzdata  # noqa
            return ZoneInfo(name)
        except Exception:
            return timezone.utc


@dataclass(frozen=True)
class DeliverySettings:
    """Все числовые константы доставки в одном месте; собираются из app.config."""
    base_fee: Decimal = Decimal("30.00")
    percent_fee: Decimal = Decimal("0.02")
    default_max_orders: int = 50
    default_display_limit: int = 10
    threshold_high: int = 60
    threshold_medium: int = 85
    default_priority: str = "medium"
    default_delivery_time: str = "12:00"
    timezone: str = "Asia/Kolkata"
    max_range_days: int = 62

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DeliverySettings":
        return cls(
            base_fee=Decimal(str(config.get("DELIVERY_BASE_FEE", cls.base_fee))),
            percent_fee=Decimal(str(config.get("DELIVERY_PERCENT_FEE", cls.percent_fee))),
            default_max_orders=int(config.get("DELIVERY_DEFAULT_MAX_ORDERS", cls.default_max_orders)),
            default_display_limit=int(config.get("DELIVERY_DEFAULT_DISPLAY_LIMIT", cls.default_display_limit)),
            threshold_high=int(config.get("DELIVERY_THRESHOLD_HIGH", cls.threshold_high)),
            threshold_medium=int(config.get("DELIVERY_THRESHOLD_MEDIUM", cls.threshold_medium)),
            default_priority=str(config.get("DELIVERY_DEFAULT_PRIORITY", cls.default_priority)),
            default_delivery_time=str(config.get("DELIVERY_DEFAULT_TIME", cls.default_delivery_time)),
            timezone=str(config.get("DELIVERY_TIMEZONE", cls.timezone)),
            max_range_days=int(config.get("DELIVERY_MAX_RANGE_DAYS", cls.max_range_days)),
        )

    @property
    def tz(self) -> tzinfo:
        return _zone(self.timezone)

    def business_date(self, moment: Optional[datetime] = None) -> date:
        # naive datetime считаем UTC: так они лежат в БД
        moment = moment or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tz).date()


def current_settings() -> DeliverySettings:
    return DeliverySettings.from_config(current_app.config)
