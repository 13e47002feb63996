from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from lending.models.booking import Booking
from lending.models.enums import BookingStatus, ItemStatus
from lending.models.item import Item
from lending.models.rental import Rental
from lending.services import lanes
from lending.services.record_pipeline import RecordNotFound, RecordPipeline
from lending.services.registry import get_pipeline
from lending.services.rules import BookingException
from lending.utils.log import get_logger

log = get_logger("lending.bookings")


class BookingService:
    def __init__(self, db: Session, pipeline: Optional[RecordPipeline] = None):
        self.db = db
        self.pipeline = pipeline or get_pipeline()

    def create(
        self,
        item_id: int,
        customer_name: str,
        start_date: date,
        end_date: date,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """Raises BookingConflict when every copy is already booked in the window."""
        booking = Booking(
            item_id=item_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_email=customer_email,
            start_date=start_date,
            end_date=end_date,
            status=BookingStatus.RESERVED.value,
            notes=notes,
        )
        return self.pipeline.create(self.db, booking)

    def get(self, booking_id: int) -> Optional[Booking]:
        return self.db.get(Booking, booking_id)

    def require(self, booking_id: int) -> Booking:
        b = self.get(booking_id)
        if not b:
            raise RecordNotFound(f"Booking {booking_id} not found")
        return b

    def list_for_window(
        self, start: date, end: date, item_ids: Optional[List[int]] = None
    ) -> List[Booking]:
        qry = self.db.query(Booking).filter(
            Booking.start_date <= end, Booking.end_date >= start
        )
        if item_ids:
            qry = qry.filter(Booking.item_id.in_(item_ids))
        return qry.order_by(Booking.start_date, Booking.id).all()

    def grid(self, year: int, month: int) -> Dict[str, Any]:
        """Lanes for every protected item in one calendar month."""
        dates = lanes.month_dates(year, month)
        items = (
            self.db.query(Item)
            .filter(Item.is_protected == True, Item.status != ItemStatus.DELETED.value)  # noqa: E712
            .order_by(Item.id)
            .all()
        )
        bookings = self.list_for_window(dates[0], dates[-1], [i.id for i in items])
        grid = lanes.build_grid(items, bookings)
        grid["dates"] = dates
        return grid

    def set_status(self, booking_id: int, status: BookingStatus) -> Booking:
        return self.pipeline.update(
            self.db, Booking, booking_id, {"status": BookingStatus(status).value}
        )

    def delete(self, booking_id: int) -> None:
        self.pipeline.delete(self.db, Booking, booking_id)

    def convert_to_rental(
        self, booking_id: int, employee: Optional[str] = None, deposit: int = 0
    ) -> Rental:
        """
        Hand out the booked item: create a rental for it and mark the booking
        active, both in one transaction. The rental goes through the same
        availability check as any other.
        """
        booking = self.require(booking_id)
        if booking.associated_rental_id:
            raise BookingException(
                f"Booking {booking_id} already belongs to rental {booking.associated_rental_id}"
            )
        if booking.status != BookingStatus.RESERVED:
            raise BookingException(f"Booking {booking_id} is {booking.status}, not reserved")

        now = datetime.now(timezone.utc)
        rental = Rental(
            customer_name=booking.customer_name,
            rented_on=now,
            expected_on=max(booking.end_date, now.date()),
            deposit=deposit,
            remark=booking.notes,
            employee=employee,
        )

        def link(db: Session, created: Rental) -> None:
            b = db.get(Booking, booking_id, with_for_update=True, populate_existing=True)
            if b is None or b.status != BookingStatus.RESERVED or b.associated_rental_id:
                raise BookingException(f"Booking {booking_id} changed concurrently; try again")
            b.status = BookingStatus.ACTIVE.value
            b.associated_rental_id = created.id
            db.flush()

        created = self.pipeline.create(
            self.db, rental, item_ids=[booking.item_id], then=link
        )
        log.info("Booking %s converted to rental %s", booking_id, created.id)
        return created
