# blueprints/delivery/services/workload.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, desc, func, select

from extensions import db
from models import DeliveryAssignment, DeliveryStatus, User, UserRole, WalletTransaction, WalletTxType
from blueprints.core.errors import NotFoundError


@dataclass
class CourierWorkload:
    courier_id: int
    courier_name: str
    courier_email: str
    contact_number: Optional[str]
    total_orders: int
    assigned_count: int
    picked_up_count: int
    in_transit_count: int
    delivered_count: int


def _count_status(status: DeliveryStatus):
    return func.count(case((DeliveryAssignment.status == status.value, 1)))


class WorkloadReporter:
    """Только чтение: активные курьеры и их назначения по статусам."""

    def get_workload(self) -> List[CourierWorkload]:
        total = func.count(DeliveryAssignment.id).label("total_orders")
        rows = db.session.execute(
            select(
                User.id, User.name, User.email, User.phone,
                total,
                _count_status(DeliveryStatus.ASSIGNED),
                _count_status(DeliveryStatus.PICKED_UP),
                _count_status(DeliveryStatus.IN_TRANSIT),
                _count_status(DeliveryStatus.DELIVERED),
            )
            .select_from(User)
            .outerjoin(DeliveryAssignment, DeliveryAssignment.courier_id == User.id)
            .where(User.role == UserRole.COURIER.value, User.is_active.is_(True))
            .group_by(User.id, User.name, User.email, User.phone)
            .order_by(desc("total_orders"), User.name.asc())
        ).all()
        return [
            CourierWorkload(
                courier_id=r[0], courier_name=r[1], courier_email=r[2], contact_number=r[3],
                total_orders=int(r[4] or 0), assigned_count=int(r[5] or 0), picked_up_count=int(r[6] or 0),
                in_transit_count=int(r[7] or 0), delivered_count=int(r[8] or 0),
            )
            for r in rows
        ]

    def courier_stats(self, courier_id: int, delivery_date: Optional[date] = None) -> dict:
        if db.session.get(User, courier_id) is None:
            raise NotFoundError("Courier not found", details={"courierId": courier_id})
        pending = (DeliveryStatus.ASSIGNED.value, DeliveryStatus.PICKED_UP.value, DeliveryStatus.IN_TRANSIT.value)
        q = select(
            func.count(DeliveryAssignment.id),
            func.count(case((DeliveryAssignment.status == DeliveryStatus.DELIVERED.value, 1))),
            func.count(case((DeliveryAssignment.status.in_(pending), 1))),
        ).where(DeliveryAssignment.courier_id == courier_id)
        earn = select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
            WalletTransaction.courier_id == courier_id,
            WalletTransaction.type == WalletTxType.EARNING.value,
        )
        if delivery_date:
            q = q.where(DeliveryAssignment.delivery_date == delivery_date)
            earn = earn.where(WalletTransaction.business_date == delivery_date)
        total, completed, pending_count = db.session.execute(q).one()
        return {
            "total_orders": int(total or 0),
            "completed_orders": int(completed or 0),
            "pending_orders": int(pending_count or 0),
            "total_earnings": Decimal(str(db.session.scalar(earn) or 0)),
        }
