from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from lending.models.enums import BookingStatus, RentalStatus


# --- rentals ---


class RentalCreate(BaseModel):
    customer_name: str
    items: List[int] = Field(..., min_length=1)
    expected_on: date
    rented_on: Optional[datetime] = None
    deposit: int = Field(0, ge=0)
    remark: Optional[str] = None
    employee: Optional[str] = None


class RentalUpdate(BaseModel):
    customer_name: Optional[str] = None
    items: Optional[List[int]] = Field(None, min_length=1)
    expected_on: Optional[date] = None
    extended_on: Optional[date] = None
    returned_on: Optional[datetime] = None
    deposit: Optional[int] = Field(None, ge=0)
    deposit_back: Optional[int] = Field(None, ge=0)
    remark: Optional[str] = None
    employee: Optional[str] = None
    employee_back: Optional[str] = None

    @field_validator(
        "customer_name", "items", "expected_on", "deposit", "deposit_back", mode="after"
    )
    @classmethod
    def _not_null(cls, v):
        # omit a field to leave it unchanged; null would clear a required column
        if v is None:
            raise ValueError("may not be null")
        return v


class RentalReturnIn(BaseModel):
    returned_on: Optional[datetime] = None
    deposit_back: Optional[int] = Field(None, ge=0)
    employee_back: Optional[str] = None


class RentalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    customer_name: str
    item_ids: List[int]
    rented_on: datetime
    expected_on: date
    extended_on: Optional[date] = None
    returned_on: Optional[datetime] = None
    deposit: int
    deposit_back: int
    remark: Optional[str] = None
    employee: Optional[str] = None
    employee_back: Optional[str] = None
    status: RentalStatus


# --- reservations ---


class ReservationCreate(BaseModel):
    customer_name: str
    items: List[int] = Field(..., min_length=1)
    pickup: datetime
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    comments: Optional[str] = None
    is_new_customer: bool = True


class ReservationUpdate(BaseModel):
    customer_name: Optional[str] = None
    items: Optional[List[int]] = Field(None, min_length=1)
    pickup: Optional[datetime] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    comments: Optional[str] = None
    done: Optional[bool] = None

    @field_validator("customer_name", "items", "pickup", "done", mode="after")
    @classmethod
    def _not_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v


class ReservationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    is_new_customer: bool
    comments: Optional[str] = None
    pickup: datetime
    done: bool
    item_ids: List[int]


class ReservationCreatedOut(ReservationOut):
    cancel_token: str


# --- bookings ---


class BookingCreate(BaseModel):
    item_id: int
    customer_name: str
    start_date: date
    end_date: date
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class BookingStatusIn(BaseModel):
    status: BookingStatus


class BookingConvertIn(BaseModel):
    employee: Optional[str] = None
    deposit: int = Field(0, ge=0)


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    item_id: int
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    start_date: date
    end_date: date
    status: BookingStatus
    notes: Optional[str] = None
    associated_rental_id: Optional[int] = None


class LaneSlotOut(BaseModel):
    booking: BookingOut
    lane: int
    column_key: str
    start: date
    end: date
    conflict: bool


class CopyColumnOut(BaseModel):
    key: str
    item_id: int
    copy_index: int
    total_copies: int
    label: str


class BookingGridOut(BaseModel):
    dates: List[date]
    columns: List[CopyColumnOut]
    slots: List[LaneSlotOut]
