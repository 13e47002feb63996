from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lending.models.booking import Booking
from lending.models.enums import BookingStatus
from lending.models.reservation import Reservation
from lending.services.coordinator import AvailabilityConflict
from lending.services.record_pipeline import RecordNotFound, RecordPipeline
from lending.services.registry import get_pipeline
from lending.utils.log import get_logger
from lending.utils.transactions import ItemLockTimeout, smart_transaction

log = get_logger("lending.jobs")


def clear_reservations(
    db: Session, now: Optional[datetime] = None, pipeline: Optional[RecordPipeline] = None
) -> List[int]:
    """
    Close every open reservation whose pickup time has passed. Each one is
    closed through the pipeline so its items are released like on a manual
    close. Returns the ids that were closed.
    """
    now = now or datetime.now()
    pipeline = pipeline or get_pipeline()
    ids = [
        r.id
        for r in db.query(Reservation.id)
        .filter(Reservation.done == False, Reservation.pickup < now)  # noqa: E712
        .all()
    ]
    log.info("Closing %d past reservations", len(ids))

    closed = []
    for rid in ids:
        try:
            pipeline.update(db, Reservation, rid, {"done": True})
            closed.append(rid)
        except (SQLAlchemyError, ItemLockTimeout, AvailabilityConflict, RecordNotFound):
            log.exception("Could not close reservation %s; will retry on next run", rid)
    return closed


def mark_overdue_bookings(db: Session, today: Optional[date] = None) -> List[int]:
    """Handed-out bookings past their end date become overdue."""
    today = today or date.today()
    with smart_transaction(db):
        late = (
            db.query(Booking)
            .filter(
                Booking.status == BookingStatus.ACTIVE.value,
                Booking.end_date < today,
            )
            .all()
        )
        for b in late:
            b.status = BookingStatus.OVERDUE.value
        db.flush()
        ids = [b.id for b in late]
    if ids:
        log.info("Marked bookings %s as overdue", ids)
    return ids
