"""
Record rules that are not about item status: booking capacity, linking
bookings to their rentals, and the one-way life cycle of reservations.
"""
from lending.models.booking import Booking
from lending.models.enums import BookingStatus, ItemStatus, ObligationKind
from lending.models.item import Item
from lending.services.availability_service import AvailabilityService
from lending.services.coordinator import AvailabilityConflict
from lending.services.record_pipeline import (
    ACTION_CREATE,
    ACTION_DELETE,
    RecordEvent,
    RecordNotFound,
    RecordPipeline,
)
from lending.utils.log import get_logger

log = get_logger("lending.rules")


class BookingException(Exception):
    pass


class ObligationStateError(Exception):
    """Requested life-cycle transition is not allowed."""


class BookingConflict(AvailabilityConflict):
    def __init__(self, item: Item, start, end):
        super().__init__([item])
        self.args = (
            f"All {item.copies} copies of item {item.id} ({item.name}) are booked "
            f"between {start.isoformat()} and {end.isoformat()}.",
        )


def validate_booking_capacity(event: RecordEvent) -> None:
    """Bookings are checked once, when created."""
    if event.action != ACTION_CREATE:
        return
    booking = event.record
    if booking.start_date > booking.end_date:
        raise BookingException("Start date must not be after end date")
    item = (
        event.db.query(Item).filter(Item.id == booking.item_id).with_for_update().first()
    )
    if not item:
        raise RecordNotFound(f"Unknown items: [{booking.item_id}]")
    if item.status == ItemStatus.DELETED:
        raise BookingException(f"Item {item.id} is deleted")
    if not AvailabilityService(event.db).can_book(item, booking.start_date, booking.end_date):
        raise BookingConflict(item, booking.start_date, booking.end_date)


def close_linked_bookings(event: RecordEvent) -> None:
    """A booking converted to a rental is done once that rental is returned."""
    if not event.became_terminal:
        return
    linked = (
        event.db.query(Booking)
        .filter(
            Booking.associated_rental_id == event.record.id,
            Booking.status.in_([BookingStatus.ACTIVE.value, BookingStatus.OVERDUE.value]),
        )
        .all()
    )
    for b in linked:
        b.status = BookingStatus.RETURNED.value
        log.info("Booking %s returned with rental %s", b.id, event.record.id)
    if linked:
        event.db.flush()


def unlink_deleted_rental(event: RecordEvent) -> None:
    if event.action != ACTION_DELETE:
        return
    linked = (
        event.db.query(Booking)
        .filter(Booking.associated_rental_id == event.record.id)
        .all()
    )
    for b in linked:
        b.associated_rental_id = None
    if linked:
        event.db.flush()


def forbid_reopening_reservation(event: RecordEvent) -> None:
    # item statuses are not re-held on undo, so undo is refused outright
    if event.became_live:
        raise ObligationStateError("Can't undo a closed reservation")


def register(pipeline: RecordPipeline) -> None:
    pipeline.on_before(ObligationKind.BOOKING, validate_booking_capacity)
    pipeline.on_before(ObligationKind.RESERVATION, forbid_reopening_reservation)
    pipeline.on_before(ObligationKind.RENTAL, unlink_deleted_rental)
    pipeline.on_after(ObligationKind.RENTAL, close_linked_bookings)
