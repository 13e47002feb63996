from datetime import date, timedelta

import pytest

from lending.models.booking import Booking
from lending.models.rental import Rental
from lending.services.booking_service import BookingService
from lending.services.coordinator import AvailabilityConflict
from lending.services.jobs import mark_overdue_bookings
from lending.services.rental_service import RentalService
from lending.services.rules import BookingConflict, BookingException

START = date.today() + timedelta(days=10)
END = START + timedelta(days=4)


def test_bookings_limited_by_copies(db, make_item):
    item_id = make_item(copies=2, is_protected=True)
    svc = BookingService(db)
    svc.create(item_id, "A", START, END)
    svc.create(item_id, "B", START + timedelta(days=2), END + timedelta(days=2))

    with pytest.raises(BookingConflict, match="All 2 copies"):
        svc.create(item_id, "C", END, END + timedelta(days=1))
    # after both end, free again
    svc.create(item_id, "C", END + timedelta(days=3), END + timedelta(days=5))
    assert db.query(Booking).count() == 3


def test_returned_booking_frees_copy(db, make_item):
    item_id = make_item()
    svc = BookingService(db)
    first = svc.create(item_id, "A", START, END)
    svc.set_status(first.id, "returned")
    svc.create(item_id, "B", START, END)


def test_booking_rejects_bad_dates_and_deleted_items(db, make_item):
    deleted = make_item(status="deleted")
    svc = BookingService(db)
    with pytest.raises(BookingException):
        svc.create(deleted, "A", START, END)
    with pytest.raises(BookingException):
        svc.create(make_item(), "A", END, START)


def test_convert_to_rental_and_return(db, make_item, status_of):
    item_id = make_item()
    svc = BookingService(db)
    booking = svc.create(item_id, "Ann", date.today(), date.today() + timedelta(days=3))

    rental = svc.convert_to_rental(booking.id, employee="kim")
    assert rental.item_ids == [item_id]
    assert rental.expected_on == booking.end_date
    assert status_of(item_id) == "outofstock"

    booking = svc.get(booking.id)
    db.refresh(booking)
    assert booking.status == "active"
    assert booking.associated_rental_id == rental.id

    with pytest.raises(BookingException):
        svc.convert_to_rental(booking.id)

    RentalService(db).return_rental(rental.id)
    db.refresh(booking)
    assert booking.status == "returned"
    assert status_of(item_id) == "instock"


def test_convert_blocked_when_copy_is_rented(db, make_item):
    item_id = make_item()
    RentalService(db).create("Walk-in", [item_id], date.today() + timedelta(days=2))
    booking = BookingService(db).create(item_id, "Ann", START, END)

    with pytest.raises(AvailabilityConflict):
        BookingService(db).convert_to_rental(booking.id)
    db.refresh(booking)
    assert booking.status == "reserved"
    assert db.query(Rental).count() == 1


def test_mark_overdue_bookings(db, make_item):
    item_id = make_item(copies=2)
    late = Booking(
        item_id=item_id,
        customer_name="Late",
        start_date=date.today() - timedelta(days=5),
        end_date=date.today() - timedelta(days=1),
        status="active",
    )
    on_time = Booking(
        item_id=item_id,
        customer_name="On time",
        start_date=date.today() - timedelta(days=5),
        end_date=date.today(),
        status="active",
    )
    db.add_all([late, on_time])
    db.commit()

    assert mark_overdue_bookings(db) == [late.id]
    db.refresh(on_time)
    assert on_time.status == "active"


def test_grid_lists_protected_items_only(db, make_item):
    shown = make_item(name="Trailer", copies=2, is_protected=True)
    make_item(name="Board game")
    svc = BookingService(db)
    svc.create(shown, "Ann", date(2031, 3, 30), date(2031, 4, 2))

    grid = svc.grid(2031, 4)
    assert [c.key for c in grid["columns"]] == [f"{shown}-1", f"{shown}-2"]
    assert len(grid["dates"]) == 30
    assert grid["slots"][0].lane == 0
