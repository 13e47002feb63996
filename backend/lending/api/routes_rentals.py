from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from lending.db import get_db
from lending.schemas.obligation_schema import (
    RentalCreate,
    RentalOut,
    RentalReturnIn,
    RentalUpdate,
)
from lending.services.rental_service import RentalService

router = APIRouter(tags=["rentals"])


@router.post("", status_code=201, response_model=RentalOut)
def create_rental(payload: RentalCreate, db: Session = Depends(get_db)):
    rental = RentalService(db).create(
        customer_name=payload.customer_name,
        item_ids=payload.items,
        expected_on=payload.expected_on,
        rented_on=payload.rented_on,
        deposit=payload.deposit,
        remark=payload.remark,
        employee=payload.employee,
    )
    return RentalOut.model_validate(rental)


@router.get("", response_model=List[RentalOut])
def list_rentals(
    active_only: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    rentals = RentalService(db).list(active_only=active_only, limit=limit)
    return [RentalOut.model_validate(r) for r in rentals]


@router.get("/overdue", response_model=List[RentalOut])
def list_overdue_rentals(db: Session = Depends(get_db)):
    return [RentalOut.model_validate(r) for r in RentalService(db).list_overdue()]


@router.get("/{rental_id}", response_model=RentalOut)
def get_rental(rental_id: int, db: Session = Depends(get_db)):
    rental = RentalService(db).get(rental_id)
    if not rental:
        raise HTTPException(status_code=404, detail="Rental not found")
    return RentalOut.model_validate(rental)


@router.patch("/{rental_id}", response_model=RentalOut)
def update_rental(rental_id: int, payload: RentalUpdate, db: Session = Depends(get_db)):
    rental = RentalService(db).update(rental_id, payload.model_dump(exclude_unset=True))
    return RentalOut.model_validate(rental)


@router.post("/{rental_id}/return", response_model=RentalOut)
def return_rental(rental_id: int, payload: RentalReturnIn, db: Session = Depends(get_db)):
    rental = RentalService(db).return_rental(
        rental_id,
        returned_on=payload.returned_on,
        deposit_back=payload.deposit_back,
        employee_back=payload.employee_back,
    )
    return RentalOut.model_validate(rental)


@router.delete("/{rental_id}", status_code=204)
def delete_rental(rental_id: int, db: Session = Depends(get_db)):
    RentalService(db).delete(rental_id)
