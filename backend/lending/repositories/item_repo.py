from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from lending.models.enums import ItemStatus
from lending.models.item import Item
from lending.utils.log import get_logger
from lending.utils.transactions import locked_transaction, smart_transaction

log = get_logger("lending.items")


class ItemRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, item_id: int) -> Optional[Item]:
        return self.db.get(Item, item_id)

    def list(
        self,
        q: Optional[str] = None,
        page: int = 1,
        size: int = 20,
        include_deleted: bool = False,
    ) -> Tuple[List[Item], int]:
        query = self.db.query(Item)
        if not include_deleted:
            query = query.filter(Item.status != ItemStatus.DELETED.value)
        if q:
            like = f"%{q}%"
            query = query.filter((Item.name.ilike(like)) | (Item.description.ilike(like)))
        total = query.with_entities(func.count()).scalar() or 0
        items = query.order_by(Item.name).offset((page - 1) * size).limit(size).all()
        return items, total

    def create(
        self,
        name: str,
        copies: int = 1,
        status: ItemStatus = ItemStatus.IN_STOCK,
        description: Optional[str] = None,
        is_protected: bool = False,
    ) -> Item:
        if copies < 1:
            raise ValueError("An item needs at least one copy")
        with smart_transaction(self.db):
            item = Item(
                name=name,
                copies=copies,
                status=ItemStatus(status).value,
                description=description,
                is_protected=is_protected,
            )
            self.db.add(item)
            self.db.flush()
        self.db.refresh(item)
        return item

    def set_status(self, item_id: int, status: ItemStatus) -> Optional[Item]:
        """
        Staff edit of the status label (lost, repairing, ...). Takes the item
        lock so it can't interleave with a hold or release of the same item.
        """
        with locked_transaction(self.db, [item_id]):
            item = self.db.get(Item, item_id, with_for_update=True)
            if not item:
                return None
            item.status = ItemStatus(status).value
            self.db.flush()
        self.db.refresh(item)
        log.info("Status of item %s manually set to %s", item.id, item.status)
        return item
