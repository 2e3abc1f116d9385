from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ServiceType = Literal["optimization", "repair"]


class Contact(BaseModel):
    handle: str = Field(min_length=1)
    email: str = Field(min_length=1)


# ---- Reservations ----

class CreateReservationRequest(BaseModel):
    service_type: ServiceType
    is_rush: bool = False
    date: Optional[str] = None
    time: Optional[str] = None
    contact: Contact


class ReservationResponse(BaseModel):
    reservation_id: str
    state: str
    service_type: str
    is_rush: bool
    date: Optional[str] = None
    time: Optional[str] = None
    total_price: int
    created_at: datetime
    expires_at: datetime
    remaining_seconds: int
    attempts: int = 0
    last_failure: Optional[str] = None
    payment_captured: bool = False


class CardDetails(BaseModel):
    number: str
    expiry: str
    cvc: str


# ---- Bookings ----

class CreateBookingRequest(BaseModel):
    service_type: ServiceType
    date: Optional[str] = None
    time: Optional[str] = None
    is_rush: bool = False
    contact: Contact


class BookingSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    service_type: str
    date: str
    time: str
    is_rush: bool
    status: str


class BookingResponse(BookingSlotResponse):
    customer_handle: str
    customer_email: str
    total_price: int
    created_at: datetime


class BookingListResponse(BaseModel):
    bookings: List[BookingSlotResponse]


class AdminBookingListResponse(BaseModel):
    bookings: List[BookingResponse]


# ---- Auth ----

class SignUp(BaseModel):
    # extra keys (e.g. "role") are ignored; signup never grants a role
    model_config = ConfigDict(extra="ignore")

    email: str = Field(min_length=3)
    password: str = Field(min_length=8)
    name: Optional[str] = None


class SignIn(BaseModel):
    email: str
    password: str


class CreateAdmin(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=8)
    name: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str


class SessionResponse(BaseModel):
    user: UserResponse
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
