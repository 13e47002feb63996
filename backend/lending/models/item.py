from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text

from lending.db import Base
from lending.models.enums import ItemStatus


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (CheckConstraint("copies >= 1", name="ck_items_copies_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    copies = Column(Integer, nullable=False, default=1)
    status = Column(
        String(32), nullable=False, default=ItemStatus.IN_STOCK.value, index=True
    )  # display label, see ItemStatus
    is_protected = Column(Boolean, nullable=False, default=False)  # shown on booking grid
    added_on = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def is_single_copy(self) -> bool:
        return (self.copies or 1) == 1

    def __repr__(self):
        return f"<Item id={self.id} name={self.name} status={self.status}>"
