"""
Keeps Item.status in step with rentals and reservations.

The coordinator plugs into the record pipeline: its before-write callback
refuses holds on items without a free copy (which aborts the whole write),
its after-write callback moves the status labels. Both run in the same
transaction as the record write.
"""
from typing import Callable, FrozenSet, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lending.models.enums import MANUAL_ITEM_STATUSES, ItemStatus, ObligationKind
from lending.models.item import Item
from lending.services.availability_service import AvailabilityService
from lending.services.record_pipeline import (
    ACTION_CREATE,
    ACTION_DELETE,
    RecordEvent,
    RecordPipeline,
)
from lending.utils.log import get_logger

log = get_logger("lending.coordinator")

HOLD_LABELS = {
    ObligationKind.RENTAL: ItemStatus.OUT_OF_STOCK,
    ObligationKind.RESERVATION: ItemStatus.RESERVED,
}


class AvailabilityConflict(Exception):
    """A hold was requested on an item with no free copy."""

    def __init__(self, items: List[Item]):
        self.item_ids = [i.id for i in items]
        names = ", ".join(f"{i.id} ({i.name})" for i in items)
        super().__init__(f"Items {names} not available.")


def set_item_status(db: Session, item: Item, status: ItemStatus) -> None:
    item.status = ItemStatus(status).value
    db.flush()
    log.info("Updated status of item %s to %s", item.id, item.status)


def plan(event: RecordEvent) -> Tuple[FrozenSet[int], FrozenSet[int]]:
    """Return (item ids to hold, item ids to release) for one write."""
    empty = frozenset()
    if event.action == ACTION_CREATE:
        return (empty if event.new.terminal else event.new.item_ids), empty
    if event.action == ACTION_DELETE:
        return empty, (empty if event.old.terminal else event.old.item_ids)

    old, new = event.old, event.new
    if old.terminal and new.terminal:
        return empty, empty
    if old.terminal:
        # re-opened, e.g. returned_on cleared again
        return new.item_ids, empty
    if new.terminal:
        return empty, old.item_ids | new.item_ids
    return event.items_added, event.items_removed


class ConsistencyCoordinator:
    def __init__(self, availability_factory: Callable[[Session], AvailabilityService] = AvailabilityService):
        self.availability_factory = availability_factory

    def register(self, pipeline: RecordPipeline) -> None:
        for kind in HOLD_LABELS:
            pipeline.on_before(kind, self.validate_holds)
            pipeline.on_after(kind, self.sync_item_status)

    def _load(self, db: Session, item_ids) -> List[Item]:
        if not item_ids:
            return []
        return (
            db.query(Item)
            .filter(Item.id.in_(sorted(item_ids)))
            .order_by(Item.id)
            .with_for_update()
            .all()
        )

    def validate_holds(self, event: RecordEvent) -> None:
        hold, _ = plan(event)
        items = self._load(event.db, hold)
        if not items:
            return
        availability = self.availability_factory(event.db)
        unavailable = [i for i in items if not availability.is_available(i)]
        if unavailable:
            log.info(
                "Rejecting %s %s: items %s not available",
                event.kind.value,
                event.action,
                [i.id for i in unavailable],
            )
            raise AvailabilityConflict(unavailable)

    def sync_item_status(self, event: RecordEvent) -> None:
        hold, release = plan(event)
        label = HOLD_LABELS[event.kind]
        for item in self._load(event.db, hold):
            self.hold(event.db, item, label)
        for item in self._load(event.db, release - hold):
            self.release(event.db, item, event.kind)

    def hold(self, db: Session, item: Item, label: ItemStatus) -> None:
        if item.status in MANUAL_ITEM_STATUSES:
            log.info(
                "Not updating status of item %s to %s, because it is manually set to %s",
                item.id,
                label.value,
                item.status,
            )
            return
        if item.status == label:
            return
        set_item_status(db, item, label)

    def release(self, db: Session, item: Item, kind: ObligationKind) -> None:
        """Never raises on state mismatches; manual overrides win."""
        label = HOLD_LABELS[kind]
        if item.status != label:
            log.info(
                "Not updating status of item %s, because it is not currently %s",
                item.id,
                label.value,
            )
            return
        try:
            remaining = self.availability_factory(db).count_active(kind, item.id)
        except SQLAlchemyError:
            log.warning(
                "Could not count live %ss for item %s; keeping status %s",
                kind.value,
                item.id,
                item.status,
                exc_info=True,
            )
            return
        if remaining > 0:
            log.info(
                "Keeping status %s of item %s, %d live %s(s) still hold it",
                item.status,
                item.id,
                remaining,
                kind.value,
            )
            return
        set_item_status(db, item, ItemStatus.IN_STOCK)
