from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import DEFAULT_PAGE_LIMIT
from app.database import async_session_maker, get_session
from app.exceptions import UnauthorizedError
from app.ledger import BookingLedger, LedgerResult
from app.notifications import BookingPublisher, get_publisher
from app.schemas import (
    AvailabilityResponse,
    BookEventRequest,
    BookEventResponse,
    BookingResponse,
    CancelBookingResponse,
    EventCreateRequest,
    EventResponse,
    EventUpdateRequest,
    Pagination,
    UserBookingResponse,
    UserBookingsResponse,
)
from app.services import create_event, get_availability, get_event, update_event

router = APIRouter(prefix="/api")

_ledger = BookingLedger(async_session_maker)


def get_ledger() -> BookingLedger:
    return _ledger


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    """
    The upstream auth layer resolves the bearer token and forwards the user id.
    """
    if x_user_id is None:
        raise UnauthorizedError("Authentication required. Please login again.")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise UnauthorizedError("Invalid X-User-Id header")
    if user_id <= 0:
        raise UnauthorizedError("Invalid X-User-Id header")
    return user_id


def _schedule_notification(
    background_tasks: BackgroundTasks, publisher: Optional[BookingPublisher], result: LedgerResult
):
    if publisher is not None:
        background_tasks.add_task(publisher.notify, result)


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def add_event(
    req: EventCreateRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    return await create_event(req, user_id, session)


@router.get("/events/{event_id}", response_model=EventResponse)
async def event_detail(event_id: int, session: AsyncSession = Depends(get_session)):
    return await get_event(event_id, session)


@router.put("/events/{event_id}", response_model=EventResponse)
async def edit_event(
    event_id: int,
    req: EventUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    return await update_event(event_id, req, user_id, session)


@router.get("/events/{event_id}/availability", response_model=AvailabilityResponse)
async def event_availability(event_id: int, session: AsyncSession = Depends(get_session)):
    return await get_availability(event_id, session)


@router.post("/bookings", response_model=BookEventResponse, status_code=status.HTTP_201_CREATED)
async def book_event(
    req: BookEventRequest,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    ledger: BookingLedger = Depends(get_ledger),
    publisher: Optional[BookingPublisher] = Depends(get_publisher),
):
    result = await ledger.create_booking(req.event_id, user_id, req.seats, user_email=req.user_email)
    _schedule_notification(background_tasks, publisher, result)
    return BookEventResponse(
        booking=BookingResponse.model_validate(result.booking),
        available_seats=result.available_seats,
    )


@router.delete("/bookings/{booking_id}", response_model=CancelBookingResponse)
async def cancel_booking_route(
    booking_id: int,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    ledger: BookingLedger = Depends(get_ledger),
    publisher: Optional[BookingPublisher] = Depends(get_publisher),
):
    result = await ledger.cancel_booking(booking_id, user_id)
    _schedule_notification(background_tasks, publisher, result)
    return CancelBookingResponse(
        message="Booking cancelled successfully",
        booking=BookingResponse.model_validate(result.booking),
        available_seats=result.available_seats,
    )


@router.get("/bookings", response_model=UserBookingsResponse)
async def user_bookings(
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    user_id: int = Depends(get_current_user_id),
    ledger: BookingLedger = Depends(get_ledger),
):
    """
    Bookings of the current user, active and cancelled, in booking order.
    """
    result = await ledger.list_bookings(user_id, page, limit)
    bookings = [
        UserBookingResponse(
            id=booking.id,
            event_id=booking.event_id,
            seats=booking.seats,
            status=booking.status,
            booking_date=booking.created_at,
            cancelled_at=booking.cancelled_at,
            title=event.title if event else None,
            location=event.location if event else None,
            date=event.date if event else None,
            organizer_id=event.created_by if event else None,
        )
        for booking, event in result.items
    ]
    return UserBookingsResponse(
        bookings=bookings,
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )
