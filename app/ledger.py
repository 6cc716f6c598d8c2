"""
Booking ledger: the only writer of an event's seat count and of booking status.

Every mutation runs under the event's in-process lock. The seat decrement is a
conditional ``UPDATE ... WHERE available_seats >= :seats``, so several API
processes sharing one database still never overbook, and a request that loses
a race to another process simply sees the seats as taken. The seat decrement
(or credit) and the booking row change always commit together or not at all.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import MAX_PAGE_LIMIT
from app.exceptions import (
    AlreadyCancelledError,
    ForbiddenError,
    InsufficientSeatsError,
    InvalidInputError,
    LedgerInvariantError,
    NotFoundError,
)
from app.locks import EventLocks
from app.logger_config import logger
from app.models import BOOKING_ACTIVE, BOOKING_CANCELLED, Booking, Event, utcnow

# largest row offset every supported backend accepts as a bound parameter
MAX_OFFSET = 2**31 - 1


@dataclass
class LedgerResult:
    booking: Booking
    available_seats: int
    event_title: str


@dataclass
class BookingPage:
    items: List[Tuple[Booking, Optional[Event]]]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def _require_positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer")
    if value <= 0:
        raise InvalidInputError(f"{name} must be greater than 0")
    return value


class BookingLedger:
    def __init__(self, session_maker: async_sessionmaker, locks: Optional[EventLocks] = None):
        self.session_maker = session_maker
        self.locks = locks or EventLocks()

    async def create_booking(
        self, event_id: int, user_id: int, seats: int, user_email: Optional[str] = None
    ) -> LedgerResult:
        """
        Reserve ``seats`` on an event for a user.

        Raises InvalidInputError, NotFoundError or InsufficientSeatsError. The
        seat check always runs against the row as it is at update time.
        """
        _require_positive_int("seats", seats)

        async with self.locks.hold(event_id):
            result = await self._apply_create(event_id, user_id, seats, user_email)

        logger.info(
            f"booking {result.booking.id} created: event={event_id} user={user_id} "
            f"seats={seats} remaining={result.available_seats}"
        )
        return result

    async def _apply_create(
        self, event_id: int, user_id: int, seats: int, user_email: Optional[str]
    ) -> LedgerResult:
        async with self.session_maker() as session:
            async with session.begin():
                event = await session.get(Event, event_id)
                if event is None:
                    raise NotFoundError(f"Event {event_id} not found")
                if seats > event.available_seats:
                    raise InsufficientSeatsError(seats, event.available_seats)

                # the snapshot above may already be stale; this predicate decides
                stmt = (
                    update(Event)
                    .where(Event.id == event_id, Event.available_seats >= seats)
                    .values(
                        available_seats=Event.available_seats - seats,
                        version=Event.version + 1,
                    )
                    .returning(Event.available_seats)
                    .execution_options(synchronize_session=False)
                )
                remaining = (await session.execute(stmt)).scalar_one_or_none()
                if remaining is None:
                    current = (
                        await session.execute(select(Event.available_seats).where(Event.id == event_id))
                    ).scalar_one_or_none()
                    if current is None:
                        raise NotFoundError(f"Event {event_id} not found")
                    logger.debug(f"event {event_id}: seats taken by a concurrent writer, {current} left")
                    raise InsufficientSeatsError(seats, current)

                booking = Booking(
                    event_id=event_id,
                    user_id=user_id,
                    user_email=user_email,
                    seats=seats,
                    status=BOOKING_ACTIVE,
                )
                session.add(booking)
                try:
                    await session.flush()
                except IntegrityError as exc:
                    raise LedgerInvariantError(event_id, "booking row rejected by the database") from exc
                await self._verify_seat_invariant(session, event_id)

        return LedgerResult(booking=booking, available_seats=remaining, event_title=event.title)

    async def cancel_booking(self, booking_id: int, requesting_user_id: int) -> LedgerResult:
        """
        Cancel an active booking and give its seats back to the event.

        Only the owner may cancel. A second cancellation raises
        AlreadyCancelledError and credits nothing.
        """
        async with self.session_maker() as session:
            booking = await session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.user_id != requesting_user_id:
            raise ForbiddenError("You can only cancel your own bookings")

        # event_id never changes, so it is safe to pick the lock from this read
        async with self.locks.hold(booking.event_id):
            result = await self._apply_cancel(booking_id, booking.event_id)

        logger.info(
            f"booking {booking_id} cancelled: event={booking.event_id} user={requesting_user_id} "
            f"seats={result.booking.seats} remaining={result.available_seats}"
        )
        return result

    async def _apply_cancel(self, booking_id: int, event_id: int) -> LedgerResult:
        async with self.session_maker() as session:
            async with session.begin():
                flip = (
                    update(Booking)
                    .where(Booking.id == booking_id, Booking.status == BOOKING_ACTIVE)
                    .values(status=BOOKING_CANCELLED, cancelled_at=utcnow())
                    .returning(Booking.seats)
                    .execution_options(synchronize_session=False)
                )
                seats = (await session.execute(flip)).scalar_one_or_none()
                if seats is None:
                    raise AlreadyCancelledError(booking_id)

                credit = (
                    update(Event)
                    .where(Event.id == event_id)
                    .values(
                        available_seats=Event.available_seats + seats,
                        version=Event.version + 1,
                    )
                    .returning(Event.available_seats)
                    .execution_options(synchronize_session=False)
                )
                try:
                    remaining = (await session.execute(credit)).scalar_one_or_none()
                except IntegrityError as exc:
                    raise LedgerInvariantError(event_id, "credit would exceed total seats") from exc
                if remaining is None:
                    raise LedgerInvariantError(event_id, f"booking {booking_id} references a missing event")

                await self._verify_seat_invariant(session, event_id)

                booking = await session.get(Booking, booking_id)
                event = await session.get(Event, event_id)

        return LedgerResult(booking=booking, available_seats=remaining, event_title=event.title)

    async def _verify_seat_invariant(self, session: AsyncSession, event_id: int):
        total_seats, available_seats = (
            await session.execute(
                select(Event.total_seats, Event.available_seats).where(Event.id == event_id)
            )
        ).one()
        reserved = (
            await session.execute(
                select(func.coalesce(func.sum(Booking.seats), 0)).where(
                    Booking.event_id == event_id,
                    Booking.status == BOOKING_ACTIVE,
                )
            )
        ).scalar_one()

        if reserved > total_seats or reserved + available_seats != total_seats:
            detail = f"reserved={reserved} available={available_seats} total={total_seats}"
            logger.critical(f"event {event_id}: seat invariant violated, rolling back ({detail})")
            raise LedgerInvariantError(event_id, detail)

    async def list_bookings(self, user_id: int, page: int, limit: int) -> BookingPage:
        """A user's bookings, active and cancelled, oldest first."""
        _require_positive_int("page", page)
        _require_positive_int("limit", limit)
        if limit > MAX_PAGE_LIMIT:
            raise InvalidInputError(f"limit must not exceed {MAX_PAGE_LIMIT}")
        if (page - 1) * limit > MAX_OFFSET:
            raise InvalidInputError("page is out of range")

        async with self.session_maker() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(Booking).where(Booking.user_id == user_id)
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    select(Booking, Event)
                    .outerjoin(Event, Event.id == Booking.event_id)
                    .where(Booking.user_id == user_id)
                    .order_by(Booking.id)
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).all()

        return BookingPage(items=[(b, e) for b, e in rows], page=page, limit=limit, total=total)
