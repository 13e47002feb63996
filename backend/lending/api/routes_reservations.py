from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from lending.db import get_db
from lending.schemas.obligation_schema import (
    ReservationCreate,
    ReservationCreatedOut,
    ReservationOut,
    ReservationUpdate,
)
from lending.services.reservation_service import ReservationService

router = APIRouter(tags=["reservations"])


@router.post("", status_code=201, response_model=ReservationCreatedOut)
def create_reservation(payload: ReservationCreate, db: Session = Depends(get_db)):
    reservation = ReservationService(db).create(
        customer_name=payload.customer_name,
        item_ids=payload.items,
        pickup=payload.pickup,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        comments=payload.comments,
        is_new_customer=payload.is_new_customer,
    )
    # the token is only handed out once, to whoever placed the reservation
    return ReservationCreatedOut.model_validate(reservation)


@router.get("", response_model=List[ReservationOut])
def list_reservations(
    active_only: bool = True,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    found = ReservationService(db).list(active_only=active_only, limit=limit)
    return [ReservationOut.model_validate(r) for r in found]


@router.get("/cancel")
def cancel_reservation(token: str = Query(...), db: Session = Depends(get_db)):
    pickup = ReservationService(db).cancel_by_token(token)
    return {"cancelled": True, "pickup": pickup}


@router.get("/{reservation_id}", response_model=ReservationOut)
def get_reservation(reservation_id: int, db: Session = Depends(get_db)):
    reservation = ReservationService(db).get(reservation_id)
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return ReservationOut.model_validate(reservation)


@router.patch("/{reservation_id}", response_model=ReservationOut)
def update_reservation(
    reservation_id: int, payload: ReservationUpdate, db: Session = Depends(get_db)
):
    reservation = ReservationService(db).update(
        reservation_id, payload.model_dump(exclude_unset=True)
    )
    return ReservationOut.model_validate(reservation)


@router.post("/{reservation_id}/done", response_model=ReservationOut)
def close_reservation(reservation_id: int, db: Session = Depends(get_db)):
    return ReservationOut.model_validate(ReservationService(db).mark_done(reservation_id))


@router.delete("/{reservation_id}", status_code=204)
def delete_reservation(reservation_id: int, db: Session = Depends(get_db)):
    ReservationService(db).delete(reservation_id)
