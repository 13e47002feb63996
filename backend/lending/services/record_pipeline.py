from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy.orm import Session

from lending.models.enums import ObligationKind
from lending.models.item import Item
from lending.utils.log import get_logger
from lending.utils.transactions import locked_transaction

log = get_logger("lending.pipeline")

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"


class RecordNotFound(Exception):
    pass


class RecordChangedConcurrently(Exception):
    pass


@dataclass(frozen=True)
class ObligationSnapshot:
    """Frozen view of an obligation record at one point of a write."""

    kind: ObligationKind
    record_id: Optional[int]
    item_ids: FrozenSet[int]
    terminal: bool

    @classmethod
    def of(cls, record) -> "ObligationSnapshot":
        return cls(
            kind=record.kind,
            record_id=record.id,
            item_ids=frozenset(record.item_ids),
            terminal=record.is_terminal,
        )


@dataclass
class RecordEvent:
    """
    Passed to every callback. `db` is the session whose transaction the
    record write runs in; callbacks must write through it so commit and
    rollback cover their changes too.
    """

    db: Session
    action: str
    kind: ObligationKind
    record: Any
    old: Optional[ObligationSnapshot] = None
    new: Optional[ObligationSnapshot] = None

    @property
    def items_removed(self) -> FrozenSet[int]:
        old = self.old.item_ids if self.old else frozenset()
        new = self.new.item_ids if self.new else frozenset()
        return old - new

    @property
    def items_added(self) -> FrozenSet[int]:
        old = self.old.item_ids if self.old else frozenset()
        new = self.new.item_ids if self.new else frozenset()
        return new - old

    @property
    def became_terminal(self) -> bool:
        return bool(self.old and self.new and not self.old.terminal and self.new.terminal)

    @property
    def became_live(self) -> bool:
        return bool(self.old and self.new and self.old.terminal and not self.new.terminal)


Callback = Callable[[RecordEvent], None]


class RecordPipeline:
    """
    Runs obligation writes as one unit:

        lock items -> begin -> before callbacks -> flush -> after callbacks -> commit

    Callbacks are registered per obligation kind. Anything raised by a
    callback (or by the flush) rolls back the record write together with
    every change the callbacks made.
    """

    def __init__(self):
        self._before: Dict[ObligationKind, List[Callback]] = defaultdict(list)
        self._after: Dict[ObligationKind, List[Callback]] = defaultdict(list)

    def on_before(self, kind: ObligationKind, callback: Callback) -> None:
        self._before[ObligationKind(kind)].append(callback)

    def on_after(self, kind: ObligationKind, callback: Callback) -> None:
        self._after[ObligationKind(kind)].append(callback)

    def _fire(self, registry: Dict[ObligationKind, List[Callback]], event: RecordEvent):
        for cb in registry.get(event.kind, ()):
            cb(event)

    # --- helpers ---

    def _peek_item_ids(self, db: Session, model, record_id: int) -> FrozenSet[int]:
        """
        Read the current item ids with a short-lived session on the same
        engine so the caller's session doesn't start a transaction before
        the locks are held.
        """
        peek = Session(bind=db.get_bind())
        try:
            record = peek.get(model, record_id)
            if record is None:
                raise RecordNotFound(f"{model.kind.value.capitalize()} {record_id} not found")
            return frozenset(record.item_ids)
        finally:
            peek.close()

    def resolve_items(self, db: Session, item_ids) -> List[Item]:
        ids = sorted({int(i) for i in item_ids})
        if not ids:
            return []
        items = db.query(Item).filter(Item.id.in_(ids)).order_by(Item.id).all()
        missing = set(ids) - {i.id for i in items}
        if missing:
            raise RecordNotFound(f"Unknown items: {sorted(missing)}")
        return items

    def _apply(self, db: Session, record, changes: Dict[str, Any]) -> None:
        for key, value in changes.items():
            if key in ("items", "item_ids") and hasattr(record, "items"):
                record.items = self.resolve_items(db, value)
            elif key == "id" or not hasattr(record, key):
                raise ValueError(f"Unknown field {key!r} for {record.kind.value}")
            else:
                setattr(record, key, value)

    # --- operations ---

    def create(
        self,
        db: Session,
        record,
        item_ids: Optional[Iterable[int]] = None,
        then: Optional[Callable[[Session, Any], None]] = None,
    ):
        """
        Persist a new record. For multi-item records pass `item_ids`; the
        items are loaded once the locks are held. `then(db, record)` runs
        after the after-write callbacks, inside the same transaction.
        """
        lock_ids = list(item_ids) if item_ids is not None else record.item_ids
        with locked_transaction(db, lock_ids):
            if item_ids is not None:
                record.items = self.resolve_items(db, lock_ids)
            event = RecordEvent(
                db=db,
                action=ACTION_CREATE,
                kind=record.kind,
                record=record,
                new=ObligationSnapshot.of(record),
            )
            self._fire(self._before, event)
            db.add(record)
            db.flush()
            event.new = ObligationSnapshot.of(record)
            self._fire(self._after, event)
            if then is not None:
                then(db, record)
        db.refresh(record)
        log.info("Created %s %s", record.kind.value, record.id)
        return record

    def update(self, db: Session, model, record_id: int, changes: Dict[str, Any]):
        lock_ids = set(self._peek_item_ids(db, model, record_id))
        for key in ("items", "item_ids"):
            if key in changes:
                lock_ids |= {int(i) for i in changes[key]}

        with locked_transaction(db, lock_ids):
            record = db.get(model, record_id, with_for_update=True)
            if record is None:
                raise RecordNotFound(f"{model.kind.value.capitalize()} {record_id} not found")
            old = ObligationSnapshot.of(record)
            if not old.item_ids <= lock_ids:
                raise RecordChangedConcurrently(
                    f"{model.kind.value.capitalize()} {record_id} changed concurrently; try again"
                )
            self._apply(db, record, changes)
            event = RecordEvent(
                db=db,
                action=ACTION_UPDATE,
                kind=record.kind,
                record=record,
                old=old,
                new=ObligationSnapshot.of(record),
            )
            log.info(
                "Removed %d items %s and added %d items %s to %s %s as part of update",
                len(event.items_removed),
                sorted(event.items_removed),
                len(event.items_added),
                sorted(event.items_added),
                record.kind.value,
                record.id,
            )
            self._fire(self._before, event)
            db.flush()
            self._fire(self._after, event)
        db.refresh(record)
        return record

    def delete(self, db: Session, model, record_id: int) -> None:
        lock_ids = self._peek_item_ids(db, model, record_id)
        with locked_transaction(db, lock_ids):
            record = db.get(model, record_id, with_for_update=True)
            if record is None:
                raise RecordNotFound(f"{model.kind.value.capitalize()} {record_id} not found")
            old = ObligationSnapshot.of(record)
            if not old.item_ids <= lock_ids:
                raise RecordChangedConcurrently(
                    f"{model.kind.value.capitalize()} {record_id} changed concurrently; try again"
                )
            event = RecordEvent(
                db=db, action=ACTION_DELETE, kind=record.kind, record=record, old=old
            )
            self._fire(self._before, event)
            db.delete(record)
            db.flush()
            self._fire(self._after, event)
        log.info("Deleted %s %s", model.kind.value, record_id)
