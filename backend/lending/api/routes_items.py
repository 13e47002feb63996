from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from lending.db import get_db
from lending.repositories.item_repo import ItemRepository
from lending.schemas.item_schema import (
    AvailabilityOut,
    ItemCreate,
    ItemListOut,
    ItemOut,
    ItemStatusIn,
)
from lending.services.availability_service import AvailabilityService

router = APIRouter(tags=["items"])


@router.get("", summary="List items", response_model=ItemListOut)
def list_items(
    q: Optional[str] = Query(None, description="search term"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    include_deleted: bool = False,
    db: Session = Depends(get_db),
):
    items, total = ItemRepository(db).list(
        q=q, page=page, size=size, include_deleted=include_deleted
    )
    return {"items": [ItemOut.model_validate(i) for i in items], "total": total}


@router.post("", status_code=201, response_model=ItemOut)
def create_item(payload: ItemCreate, db: Session = Depends(get_db)):
    item = ItemRepository(db).create(
        name=payload.name,
        copies=payload.copies,
        status=payload.status,
        description=payload.description,
        is_protected=payload.is_protected,
    )
    return ItemOut.model_validate(item)


@router.get("/{item_id}", response_model=ItemOut)
def get_item(item_id: int, db: Session = Depends(get_db)):
    item = ItemRepository(db).get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return ItemOut.model_validate(item)


@router.get("/{item_id}/availability", response_model=AvailabilityOut)
def item_availability(item_id: int, db: Session = Depends(get_db)):
    item = ItemRepository(db).get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    svc = AvailabilityService(db)
    counts = svc.availability(item)
    return AvailabilityOut(
        item_id=item.id,
        is_available=svc.is_available(item),
        total=counts.total,
        rented=counts.rented,
        reserved=counts.reserved,
        available=counts.available,
    )


@router.patch("/{item_id}/status", response_model=ItemOut)
def set_item_status(item_id: int, payload: ItemStatusIn, db: Session = Depends(get_db)):
    item = ItemRepository(db).set_status(item_id, payload.status)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return ItemOut.model_validate(item)
