from datetime import datetime, time
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from lending.config import settings
from lending.models.reservation import Reservation
from lending.services.record_pipeline import RecordNotFound, RecordPipeline
from lending.services.registry import get_pipeline

WEEKDAYS = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}


class ReservationException(Exception):
    pass


def parse_opening_hours(entries: List[str]) -> List[Tuple[int, time, time]]:
    """["mon 15:00-19:00", ...] -> [(0, time(15), time(19)), ...]"""
    parsed = []
    for entry in entries:
        try:
            day, span = entry.split()
            start, end = span.split("-")
            parsed.append(
                (WEEKDAYS[day.lower()[:3]], time.fromisoformat(start), time.fromisoformat(end))
            )
        except (KeyError, ValueError):
            raise ValueError(f"Invalid opening hours entry: {entry!r}")
    return parsed


def local_naive(dt: datetime) -> datetime:
    """Pickups are stored as naive local time."""
    if dt.tzinfo is not None:
        return dt.astimezone().replace(tzinfo=None)
    return dt


class ReservationService:
    def __init__(self, db: Session, pipeline: Optional[RecordPipeline] = None):
        self.db = db
        self.pipeline = pipeline or get_pipeline()

    def _now(self) -> datetime:
        return datetime.now()

    def validate_pickup(self, pickup: datetime, now: Optional[datetime] = None) -> None:
        now = now or self._now()
        if pickup < now:
            raise ReservationException("Pickup date must be in the future")
        if not settings.RESERVATION_ENFORCE_OPENING_HOURS:
            return
        hours = parse_opening_hours(settings.OPENING_HOURS)
        if not any(
            weekday == pickup.weekday() and start <= pickup.time() < end
            for weekday, start, end in hours
        ):
            raise ReservationException("Pickup date outside opening hours")

    def create(
        self,
        customer_name: str,
        item_ids: List[int],
        pickup: datetime,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        comments: Optional[str] = None,
        is_new_customer: bool = True,
        now: Optional[datetime] = None,
    ) -> Reservation:
        if not item_ids:
            raise ReservationException("A reservation needs at least one item")
        pickup = local_naive(pickup)
        self.validate_pickup(pickup, now=now)
        reservation = Reservation(
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            comments=comments,
            is_new_customer=is_new_customer,
            pickup=pickup,
            done=False,
            cancel_token=uuid4().hex,
        )
        return self.pipeline.create(self.db, reservation, item_ids=item_ids)

    def get(self, reservation_id: int) -> Optional[Reservation]:
        return self.db.get(Reservation, reservation_id)

    def list(self, active_only: bool = True, limit: int = 100) -> List[Reservation]:
        qry = self.db.query(Reservation)
        if active_only:
            qry = qry.filter(Reservation.done == False)  # noqa: E712
        return qry.order_by(Reservation.pickup).limit(limit).all()

    def update(self, reservation_id: int, changes: Dict) -> Reservation:
        if "items" in changes and not changes["items"]:
            raise ReservationException("A reservation needs at least one item")
        if "pickup" in changes:
            changes = dict(changes, pickup=local_naive(changes["pickup"]))
        return self.pipeline.update(self.db, Reservation, reservation_id, changes)

    def mark_done(self, reservation_id: int) -> Reservation:
        return self.update(reservation_id, {"done": True})

    def delete(self, reservation_id: int) -> None:
        self.pipeline.delete(self.db, Reservation, reservation_id)

    def cancel_by_token(self, token: str) -> datetime:
        """
        Customer-side cancel link. Deletes the open reservation the token
        belongs to and returns its pickup date.
        """
        if not token:
            raise ReservationException("No token provided")
        r = (
            self.db.query(Reservation)
            .filter(Reservation.cancel_token == token, Reservation.done == False)  # noqa: E712
            .first()
        )
        if not r:
            raise RecordNotFound("No open reservation for this token")
        pickup = r.pickup
        self.delete(r.id)
        return pickup
