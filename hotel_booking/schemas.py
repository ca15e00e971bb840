from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hotel_booking.lifecycle import (
    BookingStatus,
    BookingType,
    CustomerKind,
    PaymentMethod,
    PaymentStatus,
    RoomStatus,
)

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class GuestInfo(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=3, max_length=32)
    email: str | None = Field(default=None, max_length=254)


class StayDetails(BaseModel):
    """Fields shared by every booking-creation flow."""

    room_id: UUID
    booking_type: BookingType
    check_in_date: date
    check_in_time: str
    check_out_date: date
    check_out_time: str
    hours: int = Field(default=1, ge=1)
    adults: int = Field(default=1, ge=1)
    children: int = Field(default=0, ge=0)
    amenity_ids: list[UUID] = Field(default_factory=list)
    service_ids: list[UUID] = Field(default_factory=list)

    room_price: Decimal = Field(default=Decimal("0"), ge=0)
    amenities_price: Decimal = Field(default=Decimal("0"), ge=0)
    services_price: Decimal = Field(default=Decimal("0"), ge=0)
    total_price: Decimal = Field(ge=0)
    note: str = Field(default="", max_length=1000)

    @field_validator("check_in_time", "check_out_time")
    @classmethod
    def require_hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError("time must be formatted as HH:MM")
        return v

    @model_validator(mode="after")
    def validate_date_range(self) -> StayDetails:
        if self.check_out_date < self.check_in_date:
            raise ValueError("check_out_date must not be before check_in_date")
        return self


class BookingCreate(StayDetails):
    payment_method: PaymentMethod = PaymentMethod.CASH


class GuestBookingCreate(StayDetails):
    guest_info: GuestInfo


class AdminBookingCreate(StayDetails):
    """Front-desk booking for an existing account or a walk-in guest."""

    user_id: UUID | None = None
    guest_info: GuestInfo | None = None

    @model_validator(mode="after")
    def require_customer(self) -> AdminBookingCreate:
        if self.user_id is None and self.guest_info is None:
            raise ValueError("Provide either user_id or guest_info")
        return self


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    # skip the "earlier booking has not checked in yet" guard
    force: bool = False


class PaymentCreate(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)


class RoomChange(BaseModel):
    room_id: UUID


class RoomCreate(BaseModel):
    room_number: str = Field(min_length=1, max_length=20)
    floor: str = Field(default="1", max_length=20)
    category_id: UUID
    type_id: UUID
    price_first_hour: Decimal = Field(default=Decimal("0"), ge=0)
    price_next_hour: Decimal = Field(default=Decimal("0"), ge=0)
    price_overnight: Decimal = Field(default=Decimal("0"), ge=0)
    price_daily: Decimal = Field(default=Decimal("0"), ge=0)
    status: RoomStatus = RoomStatus.AVAILABLE
    note: str = ""


class RoomStatusUpdate(BaseModel):
    status: RoomStatus


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class NamedRef(BaseModel):
    id: UUID
    name: str

    model_config = ConfigDict(from_attributes=True)


class PricedRef(NamedRef):
    price: Decimal


class RoomResponse(BaseModel):
    id: UUID
    room_number: str
    floor: str
    category_id: UUID
    type_id: UUID
    price_first_hour: Decimal
    price_next_hour: Decimal
    price_overnight: Decimal
    price_daily: Decimal
    status: RoomStatus
    note: str
    current_booking_id: UUID | None

    model_config = ConfigDict(from_attributes=True)


class RoomDetail(RoomResponse):
    category: NamedRef
    type: NamedRef


class RoomCandidate(RoomResponse):
    """A room a booking could move to, with the re-priced stay and a ranking score."""

    estimated_price: Decimal
    score: int


class GuestResponse(BaseModel):
    id: UUID
    full_name: str
    phone: str
    email: str | None

    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    id: UUID
    booking_code: str
    customer_kind: CustomerKind
    user_id: UUID | None
    guest: GuestResponse | None
    room_id: UUID
    room_number: str | None = None
    booking_type: BookingType
    check_in_date: date
    check_in_time: str
    check_out_date: date
    check_out_time: str
    hours: int
    adults: int
    children: int
    amenities: list[PricedRef] = Field(default_factory=list)
    services: list[PricedRef] = Field(default_factory=list)
    room_price: Decimal
    amenities_price: Decimal
    services_price: Decimal
    total_price: Decimal
    payment_method: PaymentMethod
    paid_amount: Decimal
    remaining_amount: Decimal
    refund_amount: Decimal
    payment_status: PaymentStatus
    payment_date: datetime | None
    status: BookingStatus
    note: str
    created_at: datetime
    updated_at: datetime


class BookingEnriched(BookingResponse):
    customer_username: str | None = None
    customer_full_name: str | None = None
    customer_phone: str | None = None


class ScheduleSlot(BaseModel):
    """Occupied window on a room. Reveals no customer identity."""

    booking_code: str
    booking_type: BookingType
    status: BookingStatus
    check_in_date: date
    check_in_time: str
    check_out_date: date
    check_out_time: str

    model_config = ConfigDict(from_attributes=True)


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    room_id: UUID | None = None
    status: BookingStatus | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
