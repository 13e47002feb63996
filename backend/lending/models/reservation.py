from datetime import datetime, timezone
from typing import List

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import relationship

from lending.db import Base
from lending.models.enums import ObligationKind

reservation_items = Table(
    "reservation_items",
    Base.metadata,
    Column(
        "reservation_id",
        Integer,
        ForeignKey("reservations.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("item_id", Integer, ForeignKey("items.id"), primary_key=True, index=True),
)


class Reservation(Base):
    __tablename__ = "reservations"
    kind = ObligationKind.RESERVATION

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_name = Column(String(256), nullable=False)
    customer_email = Column(String(256), nullable=True)
    customer_phone = Column(String(64), nullable=True)
    is_new_customer = Column(Boolean, nullable=False, default=True)
    comments = Column(Text, nullable=True)
    pickup = Column(DateTime, nullable=False, index=True)
    done = Column(Boolean, nullable=False, default=False, index=True)  # true -> terminal
    cancel_token = Column(String(64), unique=True, nullable=True, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    items = relationship("Item", secondary=reservation_items, order_by="Item.id")

    @property
    def item_ids(self) -> List[int]:
        return [i.id for i in self.items]

    @property
    def is_terminal(self) -> bool:
        return bool(self.done)
