# blueprints/delivery/services/status.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select

from extensions import db
from models import DeliveryAssignment, DeliveryStatus, DeliveryTracking, utcnow
from blueprints.core.errors import ConflictError, NotFoundError, ValidationError
from .earnings import EarningsLedger

log = logging.getLogger(__name__)

FORWARD = (
    DeliveryStatus.ASSIGNED.value,
    DeliveryStatus.PICKED_UP.value,
    DeliveryStatus.IN_TRANSIT.value,
    DeliveryStatus.DELIVERED.value,
)
TERMINAL = {DeliveryStatus.DELIVERED.value, DeliveryStatus.CANCELLED.value}
VALID_STATUSES = {s.value for s in DeliveryStatus}


@dataclass
class GeoPoint:
    lat: float
    lng: float

    def validate(self) -> "GeoPoint":
        if self.lat is None or self.lng is None:
            raise ValidationError("Coordinates require both lat and lng")
        if not (-90 <= self.lat <= 90) or not (-180 <= self.lng <= 180):
            raise ValidationError("Coordinates out of range", details={"lat": self.lat, "lng": self.lng})
        return self

@dataclass
class TransitionResult:
    assignment: DeliveryAssignment
    previous_status: str
    changed: bool


def can_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    if current in TERMINAL:
        return False
    if target == DeliveryStatus.CANCELLED.value:
        return True
    return FORWARD.index(target) > FORWARD.index(current)


class DeliveryStatusMachine:
    """assigned → picked_up → in_transit → delivered, из любого нетерминального → cancelled.

    Повтор текущего статуса ничего не меняет. Начисление за доставку идёт
    после коммита перехода; его сбой пишется в лог для ручной сверки.
    """

    def __init__(self, ledger: Optional[EarningsLedger] = None):
        self.ledger = ledger or EarningsLedger()

    def transition(
        self,
        assignment_id: int,
        target_status: str,
        photo_url: Optional[str] = None,
        coordinates: Optional[GeoPoint] = None,
    ) -> TransitionResult:
        if target_status not in VALID_STATUSES:
            raise ValidationError("Invalid status", details={"status": target_status, "allowed": list(FORWARD) + ["cancelled"]})
        if coordinates is not None:
            coordinates.validate()

        row = db.session.execute(
            select(DeliveryAssignment).where(DeliveryAssignment.id == assignment_id).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Delivery order not found", details={"assignmentId": assignment_id})

        previous = row.status
        if not can_transition(previous, target_status):
            raise ConflictError(
                f"Cannot change status from {previous} to {target_status}",
                details={"from": previous, "to": target_status},
            )

        changed = previous != target_status
        if changed:
            row.status = target_status
            if target_status == DeliveryStatus.DELIVERED.value:
                row.delivered_at = utcnow()
            elif target_status == DeliveryStatus.CANCELLED.value:
                row.cancelled_at = utcnow()
        if target_status != DeliveryStatus.CANCELLED.value:
            if photo_url:
                row.delivery_photo_url = photo_url
            if coordinates is not None:
                row.delivery_latitude = coordinates.lat
                row.delivery_longitude = coordinates.lng
        db.session.commit()

        if changed:
            log.info("delivery status changed", extra={
                "event": "status_transition", "assignment_id": row.id, "order_id": row.order_id,
                "from_status": previous, "to_status": target_status,
            })
        if target_status == DeliveryStatus.DELIVERED.value:
            self._credit(row)
        return TransitionResult(assignment=row, previous_status=previous, changed=changed)

    def _credit(self, row: DeliveryAssignment) -> None:
        assignment_id, order_id, courier_id = row.id, row.order_id, row.courier_id
        try:
            self.ledger.credit_earning(assignment_id)
        except Exception:  # noqa: BLE001
            # статус уже сохранён; начисление сверяем вручную по этим id
            db.session.rollback()
            log.error("earning credit failed", exc_info=True, extra={
                "event": "earning_reconciliation", "assignment_id": assignment_id,
                "order_id": order_id, "courier_id": courier_id,
            })


def track_location(assignment_id: int, latitude: float, longitude: float,
                   accuracy: Optional[float] = None) -> DeliveryTracking:
    GeoPoint(latitude, longitude).validate()
    if db.session.get(DeliveryAssignment, assignment_id) is None:
        raise NotFoundError("Delivery order not found", details={"assignmentId": assignment_id})
    point = DeliveryTracking(assignment_id=assignment_id, latitude=latitude, longitude=longitude, accuracy=accuracy)
    db.session.add(point)
    db.session.commit()
    return point
