from datetime import date, datetime, timedelta

from sqlalchemy.exc import OperationalError

from lending.models.booking import Booking
from lending.models.item import Item
from lending.services.availability_service import AvailabilityService
from lending.services.rental_service import RentalService
from lending.services.reservation_service import ReservationService


def test_single_copy_follows_status_label(db, make_item):
    free = make_item(name="Free")
    lost = make_item(name="Lost", status="lost")
    svc = AvailabilityService(db)
    assert svc.is_available(db.get(Item, free)) is True
    assert svc.is_available(db.get(Item, lost)) is False


def test_multi_copy_ignores_label_and_counts(db, make_item):
    item_id = make_item(copies=3, status="outofstock")
    svc = AvailabilityService(db)
    assert svc.is_available(db.get(Item, item_id)) is True

    due = date.today() + timedelta(days=7)
    RentalService(db).create("Ann", [item_id], due)
    RentalService(db).create("Bob", [item_id], due)
    item = db.get(Item, item_id)
    counts = svc.availability(item)
    assert (counts.total, counts.rented, counts.available) == (3, 2, 1)
    assert svc.is_available(item) is True


def test_reservations_count_against_copies(db, make_item):
    item_id = make_item(copies=2)
    pickup = datetime.now() + timedelta(days=2)
    ReservationService(db).create("Ann", [item_id], pickup)
    RentalService(db).create("Bob", [item_id], date.today() + timedelta(days=3))

    item = db.get(Item, item_id)
    svc = AvailabilityService(db)
    assert svc.count_active_reservations(item_id) == 1
    assert svc.count_active_rentals(item_id) == 1
    assert svc.is_available(item) is False


def test_returned_rentals_do_not_count(db, make_item):
    item_id = make_item(copies=2)
    svc = RentalService(db)
    r = svc.create("Ann", [item_id], date.today() + timedelta(days=7))
    svc.return_rental(r.id)
    assert AvailabilityService(db).count_active_rentals(item_id) == 0


def test_count_failure_reports_unavailable(db, make_item, monkeypatch):
    item_id = make_item(copies=5)
    item = db.get(Item, item_id)
    svc = AvailabilityService(db)

    def broken(_item_id):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(svc, "count_active_rentals", broken)
    assert svc.is_available(item) is False
    assert svc.availability(item).available == 0


def test_booking_peak_uses_inclusive_dates(db, make_item):
    item_id = make_item(copies=2)
    db.add_all(
        [
            Booking(item_id=item_id, customer_name="A", start_date=date(2030, 1, 1), end_date=date(2030, 1, 5)),
            Booking(item_id=item_id, customer_name="B", start_date=date(2030, 1, 5), end_date=date(2030, 1, 8)),
            Booking(
                item_id=item_id,
                customer_name="C",
                start_date=date(2030, 1, 2),
                end_date=date(2030, 1, 3),
                status="returned",
            ),
        ]
    )
    db.commit()
    svc = AvailabilityService(db)
    # A and B share Jan 5
    assert svc.booking_peak(item_id, date(2030, 1, 1), date(2030, 1, 31)) == 2
    assert svc.booking_peak(item_id, date(2030, 1, 6), date(2030, 1, 31)) == 1
    assert svc.booking_peak(item_id, date(2030, 1, 9), date(2030, 1, 31)) == 0

    item = db.get(Item, item_id)
    assert svc.can_book(item, date(2030, 1, 4), date(2030, 1, 6)) is False
    assert svc.can_book(item, date(2030, 1, 6), date(2030, 1, 10)) is True
