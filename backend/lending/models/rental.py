from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import relationship

from lending.db import Base
from lending.models.enums import ObligationKind, RentalStatus

rental_items = Table(
    "rental_items",
    Base.metadata,
    Column(
        "rental_id",
        Integer,
        ForeignKey("rentals.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("item_id", Integer, ForeignKey("items.id"), primary_key=True, index=True),
)


class Rental(Base):
    __tablename__ = "rentals"
    kind = ObligationKind.RENTAL

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_name = Column(String(256), nullable=False)
    rented_on = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    expected_on = Column(Date, nullable=False)
    extended_on = Column(Date, nullable=True)
    returned_on = Column(DateTime, nullable=True, index=True)  # set -> terminal
    deposit = Column(Integer, nullable=False, default=0)
    deposit_back = Column(Integer, nullable=False, default=0)
    remark = Column(Text, nullable=True)
    employee = Column(String(128), nullable=True)
    employee_back = Column(String(128), nullable=True)

    items = relationship("Item", secondary=rental_items, order_by="Item.id")

    @property
    def item_ids(self) -> List[int]:
        return [i.id for i in self.items]

    @property
    def is_terminal(self) -> bool:
        return self.returned_on is not None

    @property
    def due_on(self) -> date:
        return self.extended_on or self.expected_on

    def status_on(self, today: Optional[date] = None) -> RentalStatus:
        today = today or date.today()
        if self.returned_on is not None:
            if self.returned_on.date() == today:
                return RentalStatus.RETURNED_TODAY
            return RentalStatus.RETURNED
        if self.due_on < today:
            return RentalStatus.OVERDUE
        if self.due_on == today:
            return RentalStatus.DUE_TODAY
        return RentalStatus.ACTIVE

    @property
    def status(self) -> RentalStatus:
        return self.status_on()
