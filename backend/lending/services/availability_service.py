from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lending.models.booking import Booking
from lending.models.enums import BookingStatus, ItemStatus, ObligationKind
from lending.models.item import Item
from lending.models.rental import Rental, rental_items
from lending.models.reservation import Reservation, reservation_items
from lending.utils.log import get_logger

log = get_logger("lending.availability")


@dataclass(frozen=True)
class ItemAvailability:
    total: int
    rented: int
    reserved: int
    available: int


class AvailabilityService:
    """
    Read-only answers to "is a copy of this item free right now".

    Single-copy items trust the status label. Multi-copy items ignore it and
    subtract the live rentals and reservations from the copy count.
    """

    def __init__(self, db: Session):
        self.db = db

    def count_active_rentals(self, item_id: int) -> int:
        return (
            self.db.query(func.count(func.distinct(Rental.id)))
            .join(rental_items, rental_items.c.rental_id == Rental.id)
            .filter(rental_items.c.item_id == item_id, Rental.returned_on.is_(None))
            .scalar()
            or 0
        )

    def count_active_reservations(self, item_id: int) -> int:
        return (
            self.db.query(func.count(func.distinct(Reservation.id)))
            .join(reservation_items, reservation_items.c.reservation_id == Reservation.id)
            .filter(
                reservation_items.c.item_id == item_id,
                Reservation.done == False,  # noqa: E712
            )
            .scalar()
            or 0
        )

    def count_active(self, kind: ObligationKind, item_id: int) -> int:
        if kind == ObligationKind.RENTAL:
            return self.count_active_rentals(item_id)
        if kind == ObligationKind.RESERVATION:
            return self.count_active_reservations(item_id)
        raise ValueError(f"No live-count for obligation kind {kind}")

    def is_available(self, item: Item) -> bool:
        if item.is_single_copy:
            return item.status == ItemStatus.IN_STOCK
        try:
            rented = self.count_active_rentals(item.id)
            reserved = self.count_active_reservations(item.id)
        except SQLAlchemyError:
            log.warning(
                "Could not count obligations for item %s; treating as unavailable",
                item.id,
                exc_info=True,
            )
            return False
        return item.copies - rented - reserved > 0

    def availability(self, item: Item) -> ItemAvailability:
        """Copy counts for display; on store errors nothing is reported free."""
        total = item.copies or 1
        try:
            rented = self.count_active_rentals(item.id)
            reserved = self.count_active_reservations(item.id)
        except SQLAlchemyError:
            log.warning("Availability lookup failed for item %s", item.id, exc_info=True)
            return ItemAvailability(total=total, rented=0, reserved=0, available=0)
        available = max(0, total - rented - reserved)
        if item.is_single_copy and item.status != ItemStatus.IN_STOCK:
            available = 0
        return ItemAvailability(
            total=total, rented=rented, reserved=reserved, available=available
        )

    # --- bookings ---

    def booking_peak(
        self, item_id: int, start: date, end: date, exclude_id: Optional[int] = None
    ) -> int:
        """
        Maximum number of live bookings of the item overlapping any single day
        of [start, end]. Dates are inclusive on both ends.
        """
        qry = self.db.query(Booking.start_date, Booking.end_date).filter(
            Booking.item_id == item_id,
            Booking.status != BookingStatus.RETURNED.value,
            Booking.start_date <= end,
            Booking.end_date >= start,
        )
        if exclude_id is not None:
            qry = qry.filter(Booking.id != exclude_id)

        # +1 on the first day, -1 on the day after the last day
        deltas = {}
        for b_start, b_end in qry.all():
            lo = max(b_start, start)
            hi = min(b_end, end) + timedelta(days=1)
            deltas[lo] = deltas.get(lo, 0) + 1
            deltas[hi] = deltas.get(hi, 0) - 1

        peak = running = 0
        for day in sorted(deltas):
            running += deltas[day]
            peak = max(peak, running)
        return peak

    def can_book(
        self, item: Item, start: date, end: date, exclude_id: Optional[int] = None
    ) -> bool:
        try:
            peak = self.booking_peak(item.id, start, end, exclude_id=exclude_id)
        except SQLAlchemyError:
            log.warning(
                "Could not count bookings for item %s; treating as unavailable",
                item.id,
                exc_info=True,
            )
            return False
        return peak + 1 <= (item.copies or 1)
