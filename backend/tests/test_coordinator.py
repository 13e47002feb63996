from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from lending.db import SessionLocal
from lending.models.enums import ObligationKind
from lending.models.item import Item
from lending.models.rental import Rental, rental_items
from lending.services.availability_service import AvailabilityService
from lending.services.coordinator import AvailabilityConflict, ConsistencyCoordinator, plan
from lending.services.record_pipeline import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_UPDATE,
    ObligationSnapshot,
    RecordEvent,
)
from lending.services.registry import build_pipeline
from lending.services.rental_service import RentalService
from lending.services.reservation_service import ReservationService
from lending.utils.transactions import UncommittedChanges, smart_transaction

DUE = date.today() + timedelta(days=7)


def snap(items, terminal=False):
    return ObligationSnapshot(ObligationKind.RENTAL, 1, frozenset(items), terminal)


def test_plan_covers_life_cycle():
    ev = RecordEvent(db=None, action=ACTION_CREATE, kind=ObligationKind.RENTAL, record=None, new=snap([1, 2]))
    assert plan(ev) == ({1, 2}, set())

    ev = RecordEvent(db=None, action=ACTION_UPDATE, kind=ObligationKind.RENTAL, record=None, old=snap([1, 2]), new=snap([2, 3]))
    assert plan(ev) == ({3}, {1})

    ev = RecordEvent(db=None, action=ACTION_UPDATE, kind=ObligationKind.RENTAL, record=None, old=snap([1]), new=snap([1, 4], terminal=True))
    assert plan(ev) == (set(), {1, 4})

    ev = RecordEvent(db=None, action=ACTION_UPDATE, kind=ObligationKind.RENTAL, record=None, old=snap([1], terminal=True), new=snap([1]))
    assert plan(ev) == ({1}, set())

    ev = RecordEvent(db=None, action=ACTION_DELETE, kind=ObligationKind.RENTAL, record=None, old=snap([5], terminal=True))
    assert plan(ev) == (set(), set())


def test_single_copy_rent_and_return(db, make_item, status_of):
    item_id = make_item()
    svc = RentalService(db)
    rental = svc.create("Ann", [item_id], DUE)
    assert status_of(item_id) == "outofstock"

    with pytest.raises(AvailabilityConflict) as exc:
        svc.create("Bob", [item_id], DUE)
    assert exc.value.item_ids == [item_id]
    assert db.query(Rental).count() == 1

    svc.return_rental(rental.id)
    assert status_of(item_id) == "instock"


def test_two_copies_three_customers(db, make_item, status_of):
    item_id = make_item(copies=2)
    svc = RentalService(db)
    a = svc.create("A", [item_id], DUE)
    assert status_of(item_id) == "outofstock"
    b = svc.create("B", [item_id], DUE)
    assert status_of(item_id) == "outofstock"
    with pytest.raises(AvailabilityConflict):
        svc.create("C", [item_id], DUE)

    # one copy still out, label stays
    svc.return_rental(a.id)
    assert status_of(item_id) == "outofstock"
    svc.return_rental(b.id)
    assert status_of(item_id) == "instock"


def test_conflict_on_one_item_writes_nothing(db, make_item, status_of):
    free = make_item(name="Free")
    taken = make_item(name="Taken")
    svc = RentalService(db)
    svc.create("Ann", [taken], DUE)

    with pytest.raises(AvailabilityConflict) as exc:
        svc.create("Bob", [free, taken], DUE)
    assert "Taken" in str(exc.value)
    assert status_of(free) == "instock"
    assert db.query(Rental).count() == 1


def test_manual_label_is_kept(db, make_item, status_of):
    item_id = make_item(copies=2, status="repairing")
    svc = RentalService(db)
    rental = svc.create("Ann", [item_id], DUE)
    assert status_of(item_id) == "repairing"
    svc.return_rental(rental.id)
    assert status_of(item_id) == "repairing"


def test_swapping_items_moves_holds(db, make_item, status_of):
    first = make_item(name="First")
    second = make_item(name="Second")
    svc = RentalService(db)
    rental = svc.create("Ann", [first], DUE)

    updated = svc.update(rental.id, {"items": [second]})
    assert updated.item_ids == [second]
    assert status_of(first) == "instock"
    assert status_of(second) == "outofstock"


def test_delete_releases_and_is_idempotent(db, make_item, status_of):
    item_id = make_item()
    svc = RentalService(db)
    returned = svc.create("Ann", [item_id], DUE)
    svc.return_rental(returned.id)
    live = svc.create("Bob", [item_id], DUE)

    # deleting a returned rental must not free the copy Bob holds
    svc.delete(returned.id)
    assert status_of(item_id) == "outofstock"

    svc.delete(live.id)
    assert status_of(item_id) == "instock"


def test_release_is_a_no_op_on_items_in_stock(db, make_item, status_of):
    free = make_item(name="Free", copies=2)
    stale = make_item(name="Stale", copies=2, status="outofstock")
    coordinator = ConsistencyCoordinator()

    with smart_transaction(db):
        item = db.get(Item, free)
        coordinator.release(db, item, ObligationKind.RENTAL)
        coordinator.release(db, item, ObligationKind.RENTAL)
    assert status_of(free) == "instock"

    # no live rental left: first release resets, second finds nothing to do
    with smart_transaction(db):
        item = db.get(Item, stale)
        coordinator.release(db, item, ObligationKind.RENTAL)
        coordinator.release(db, item, ObligationKind.RENTAL)
    assert status_of(stale) == "instock"


def test_reopened_rental_is_held_again(db, make_item, status_of):
    item_id = make_item()
    svc = RentalService(db)
    rental = svc.create("Ann", [item_id], DUE)
    svc.return_rental(rental.id)

    svc.update(rental.id, {"returned_on": None})
    assert status_of(item_id) == "outofstock"

    svc.return_rental(rental.id)
    other = svc.create("Bob", [item_id], DUE)
    with pytest.raises(AvailabilityConflict):
        svc.update(rental.id, {"returned_on": None})
    assert svc.get(rental.id).returned_on is not None
    assert other.status.value == "active"


def test_reservation_holds_with_reserved_label(db, make_item, status_of):
    item_id = make_item()
    svc = ReservationService(db)
    r = svc.create("Ann", [item_id], datetime.now() + timedelta(days=1))
    assert status_of(item_id) == "reserved"
    svc.mark_done(r.id)
    assert status_of(item_id) == "instock"


def test_rental_does_not_release_reserved_label(db, make_item, status_of):
    item_id = make_item(copies=3)
    ReservationService(db).create("Ann", [item_id], datetime.now() + timedelta(days=1))
    rentals = RentalService(db)
    rental = rentals.create("Bob", [item_id], DUE)
    assert status_of(item_id) == "outofstock"
    rentals.return_rental(rental.id)
    # label is a rental label, the reservation is still live but does not own it
    assert status_of(item_id) == "instock"


def test_failure_after_status_write_rolls_back_everything(db, make_item, status_of):
    item_id = make_item()
    pipeline = build_pipeline()

    def boom(event):
        raise RuntimeError("mail server down")

    pipeline.on_after(ObligationKind.RENTAL, boom)
    with pytest.raises(RuntimeError):
        RentalService(db, pipeline=pipeline).create("Ann", [item_id], DUE)

    assert status_of(item_id) == "instock"
    assert db.query(Rental).count() == 0


def count_items_named(name):
    s = SessionLocal()
    try:
        return s.query(Item).filter(Item.name == name).count()
    finally:
        s.close()


def test_rejected_rental_does_not_commit_callers_pending_writes(db, make_item):
    taken = make_item(name="Taken")
    RentalService(db).create("Ann", [taken], DUE)

    db.add(Item(name="stray"))
    with pytest.raises(UncommittedChanges):
        RentalService(db).create("Bob", [taken], DUE)
    db.rollback()

    assert count_items_named("stray") == 0


def test_flushed_writes_are_not_committed_either(db, make_item):
    item_id = make_item()
    db.add(Item(name="stray"))
    db.flush()
    with pytest.raises(UncommittedChanges):
        RentalService(db).create("Ann", [item_id], DUE)
    db.rollback()

    assert count_items_named("stray") == 0
    assert db.query(Rental).count() == 0


def test_smart_transaction_nests_under_pending_writes(db):
    db.add(Item(name="stray"))
    with smart_transaction(db):
        db.add(Item(name="inner"))
    # the caller still owns the commit
    db.rollback()

    assert count_items_named("stray") == 0
    assert count_items_named("inner") == 0


def test_concurrent_rentals_of_last_copy(make_item, status_of):
    item_id = make_item()

    def attempt(n):
        s = SessionLocal()
        try:
            RentalService(s).create(f"Customer {n}", [item_id], DUE)
            return True
        except AvailabilityConflict:
            return False
        finally:
            s.close()

    with ThreadPoolExecutor(max_workers=6) as ex:
        results = list(ex.map(attempt, range(6)))

    assert results.count(True) == 1
    assert status_of(item_id) == "outofstock"
    s = SessionLocal()
    try:
        assert s.query(Rental).count() == 1
    finally:
        s.close()


def test_concurrent_rentals_never_exceed_copies(make_item):
    item_id = make_item(copies=2)

    def attempt(n):
        s = SessionLocal()
        try:
            RentalService(s).create(f"Customer {n}", [item_id], DUE)
            return True
        except AvailabilityConflict:
            return False
        finally:
            s.close()

    with ThreadPoolExecutor(max_workers=8) as ex:
        results = list(ex.map(attempt, range(8)))

    assert results.count(True) == 2
    s = SessionLocal()
    try:
        rows = s.execute(
            select(func.count()).select_from(rental_items).where(rental_items.c.item_id == item_id)
        ).scalar()
        assert rows == 2
    finally:
        s.close()


def test_concurrent_rentals_and_reservations_share_copies(make_item):
    item_id = make_item(copies=2)
    pickup = datetime.now() + timedelta(days=1)

    def attempt(n):
        s = SessionLocal()
        try:
            if n % 2:
                ReservationService(s).create(f"Customer {n}", [item_id], pickup)
            else:
                RentalService(s).create(f"Customer {n}", [item_id], DUE)
            return True
        except AvailabilityConflict:
            return False
        finally:
            s.close()

    with ThreadPoolExecutor(max_workers=8) as ex:
        results = list(ex.map(attempt, range(8)))

    assert results.count(True) == 2
    s = SessionLocal()
    try:
        live = AvailabilityService(s)
        assert live.count_active_rentals(item_id) + live.count_active_reservations(item_id) == 2
    finally:
        s.close()
