"""
Copy lanes for the booking grid.

Each physical copy of an item is one lane. Bookings are packed into lanes
greedily by start date, which needs no more lanes than the peak number of
overlapping bookings. Presentation only: nothing here gates a write.
"""
import calendar
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from lending.utils.log import get_logger

log = get_logger("lending.lanes")


@dataclass(frozen=True)
class LaneSlot:
    booking: Any
    lane: int  # 0-based
    start: date
    end: date
    conflict: bool = False  # forced onto lane 0, overlaps another booking

    @property
    def column_key(self) -> str:
        return f"{self.booking.item_id}-{self.lane + 1}"


@dataclass(frozen=True)
class CopyColumn:
    key: str
    item: Any
    copy_index: int  # 1-based
    total_copies: int

    @property
    def label(self) -> str:
        if self.total_copies == 1:
            return self.item.name
        return f"{self.item.name} {self.copy_index}/{self.total_copies}"


def assign_lanes(item, bookings: Iterable[Any]) -> List[LaneSlot]:
    copies = max(1, item.copies or 1)
    own = sorted(
        (b for b in bookings if b.item_id == item.id),
        key=lambda b: (b.start_date, b.id or 0),
    )

    lane_ends: List[Optional[date]] = [None] * copies
    slots = []
    for booking in own:
        lane = next(
            (
                i
                for i, last_end in enumerate(lane_ends)
                if last_end is None or last_end < booking.start_date
            ),
            None,
        )
        conflict = lane is None
        if conflict:
            log.warning(
                "Booking %s overlaps all %d lanes of item %s; shown on lane 0",
                booking.id,
                copies,
                item.id,
            )
            lane = 0
            lane_ends[0] = max(lane_ends[0], booking.end_date)
        else:
            lane_ends[lane] = booking.end_date
        slots.append(
            LaneSlot(
                booking=booking,
                lane=lane,
                start=booking.start_date,
                end=booking.end_date,
                conflict=conflict,
            )
        )
    return slots


def build_copy_columns(items: Iterable[Any]) -> List[CopyColumn]:
    columns = []
    for item in items:
        copies = max(1, item.copies or 1)
        for i in range(1, copies + 1):
            columns.append(
                CopyColumn(key=f"{item.id}-{i}", item=item, copy_index=i, total_copies=copies)
            )
    return columns


def month_dates(year: int, month: int) -> List[date]:
    days = calendar.monthrange(year, month)[1]
    return [date(year, month, d) for d in range(1, days + 1)]


def booking_for_cell(day: date, column_key: str, slots: Iterable[LaneSlot]) -> Optional[LaneSlot]:
    return next(
        (s for s in slots if s.column_key == column_key and s.start <= day <= s.end),
        None,
    )


def build_grid(items: Iterable[Any], bookings: Iterable[Any]) -> Dict[str, Any]:
    items = list(items)
    bookings = list(bookings)
    slots = []
    for item in items:
        slots.extend(assign_lanes(item, bookings))
    return {"columns": build_copy_columns(items), "slots": slots}
