from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from lending.models.enums import ItemStatus


class ItemCreate(BaseModel):
    name: str
    copies: int = Field(1, ge=1)
    status: ItemStatus = ItemStatus.IN_STOCK
    description: Optional[str] = None
    is_protected: bool = False


class ItemStatusIn(BaseModel):
    status: ItemStatus


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: Optional[str] = None
    copies: int
    status: ItemStatus
    is_protected: bool
    added_on: Optional[datetime] = None


class ItemListOut(BaseModel):
    items: List[ItemOut]
    total: int


class AvailabilityOut(BaseModel):
    item_id: int
    is_available: bool
    total: int
    rented: int
    reserved: int
    available: int
