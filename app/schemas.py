from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    date: Optional[datetime] = None
    total_seats: int


class EventUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    date: Optional[datetime] = None
    # accepted only when equal to the current values
    total_seats: Optional[int] = None
    available_seats: Optional[int] = None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    date: Optional[datetime] = None
    total_seats: int
    available_seats: int
    created_by: Optional[int] = None
    created_at: datetime


class AvailabilityResponse(BaseModel):
    event_id: int
    total_seats: int
    available_seats: int
    version: int


class BookEventRequest(BaseModel):
    event_id: int
    # positivity is checked by the ledger so it reports InvalidInput, not 422
    seats: int = 1
    user_email: Optional[str] = None


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    user_id: int
    seats: int
    status: str
    created_at: datetime
    cancelled_at: Optional[datetime] = None


class BookEventResponse(BaseModel):
    booking: BookingResponse
    available_seats: int


class CancelBookingResponse(BaseModel):
    message: str
    booking: BookingResponse
    available_seats: int


class UserBookingResponse(BaseModel):
    id: int
    event_id: int
    seats: int
    status: str
    booking_date: datetime
    cancelled_at: Optional[datetime] = None
    title: Optional[str] = None
    location: Optional[str] = None
    date: Optional[datetime] = None
    organizer_id: Optional[int] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(serialization_alias="totalPages")


class UserBookingsResponse(BaseModel):
    bookings: List[UserBookingResponse]
    pagination: Pagination
