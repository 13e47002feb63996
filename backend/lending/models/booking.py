from datetime import datetime, timezone
from typing import List

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from lending.db import Base
from lending.models.enums import BookingStatus, ObligationKind


class Booking(Base):
    __tablename__ = "bookings"
    kind = ObligationKind.BOOKING

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    customer_name = Column(String(256), nullable=False)
    customer_phone = Column(String(64), nullable=True)
    customer_email = Column(String(256), nullable=True)
    start_date = Column(Date, nullable=False, index=True)  # inclusive
    end_date = Column(Date, nullable=False, index=True)  # inclusive
    status = Column(
        String(32), nullable=False, default=BookingStatus.RESERVED.value
    )  # reserved, active, returned, overdue
    notes = Column(Text, nullable=True)
    associated_rental_id = Column(
        Integer, ForeignKey("rentals.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    item = relationship("Item")
    rental = relationship("Rental")

    @property
    def item_ids(self) -> List[int]:
        return [self.item_id]

    @property
    def is_terminal(self) -> bool:
        return self.status == BookingStatus.RETURNED

    def overlaps(self, start, end) -> bool:
        return self.start_date <= end and start <= self.end_date
