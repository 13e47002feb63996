import enum


class ItemStatus(str, enum.Enum):
    IN_STOCK = "instock"
    OUT_OF_STOCK = "outofstock"
    RESERVED = "reserved"
    ON_BACKORDER = "onbackorder"
    LOST = "lost"
    REPAIRING = "repairing"
    FOR_SALE = "forsale"
    DELETED = "deleted"


# Labels set by staff by hand. The coordinator never overwrites these.
MANUAL_ITEM_STATUSES = frozenset(
    s.value
    for s in (
        ItemStatus.ON_BACKORDER,
        ItemStatus.LOST,
        ItemStatus.REPAIRING,
        ItemStatus.FOR_SALE,
        ItemStatus.DELETED,
    )
)


class RentalStatus(str, enum.Enum):
    """Computed from dates, never stored."""

    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    RETURNED_TODAY = "returned_today"


class BookingStatus(str, enum.Enum):
    RESERVED = "reserved"
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"


class ObligationKind(str, enum.Enum):
    RENTAL = "rental"
    RESERVATION = "reservation"
    BOOKING = "booking"
