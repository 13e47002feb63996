from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lending.db import get_db
from lending.schemas.obligation_schema import (
    BookingConvertIn,
    BookingCreate,
    BookingGridOut,
    BookingOut,
    BookingStatusIn,
    CopyColumnOut,
    LaneSlotOut,
    RentalOut,
)
from lending.services.booking_service import BookingService

router = APIRouter(tags=["bookings"])


@router.post("", status_code=201, response_model=BookingOut)
def create_booking(payload: BookingCreate, db: Session = Depends(get_db)):
    booking = BookingService(db).create(**payload.model_dump())
    return BookingOut.model_validate(booking)


@router.get("", response_model=List[BookingOut])
def list_bookings(
    start: date = Query(...),
    end: date = Query(...),
    item_id: Optional[List[int]] = Query(None),
    db: Session = Depends(get_db),
):
    found = BookingService(db).list_for_window(start, end, item_ids=item_id)
    return [BookingOut.model_validate(b) for b in found]


@router.get("/grid", response_model=BookingGridOut)
def booking_grid(
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
):
    grid = BookingService(db).grid(year, month)
    columns = [
        CopyColumnOut(
            key=c.key,
            item_id=c.item.id,
            copy_index=c.copy_index,
            total_copies=c.total_copies,
            label=c.label,
        )
        for c in grid["columns"]
    ]
    slots = [
        LaneSlotOut(
            booking=BookingOut.model_validate(s.booking),
            lane=s.lane,
            column_key=s.column_key,
            start=s.start,
            end=s.end,
            conflict=s.conflict,
        )
        for s in grid["slots"]
    ]
    return BookingGridOut(dates=grid["dates"], columns=columns, slots=slots)


@router.patch("/{booking_id}/status", response_model=BookingOut)
def set_booking_status(
    booking_id: int, payload: BookingStatusIn, db: Session = Depends(get_db)
):
    return BookingOut.model_validate(BookingService(db).set_status(booking_id, payload.status))


@router.post("/{booking_id}/convert", status_code=201, response_model=RentalOut)
def convert_booking(
    booking_id: int, payload: BookingConvertIn, db: Session = Depends(get_db)
):
    rental = BookingService(db).convert_to_rental(
        booking_id, employee=payload.employee, deposit=payload.deposit
    )
    return RentalOut.model_validate(rental)


@router.delete("/{booking_id}", status_code=204)
def delete_booking(booking_id: int, db: Session = Depends(get_db)):
    BookingService(db).delete(booking_id)
