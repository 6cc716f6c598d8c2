from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from app.logger_config import logger
from app.models import Event
from app.schemas import AvailabilityResponse, EventCreateRequest, EventUpdateRequest

EDITABLE_EVENT_FIELDS = ("title", "description", "location", "date")


async def create_event(req: EventCreateRequest, user_id: int, session: AsyncSession) -> Event:
    """
    Create an event with every seat available.
    """
    if req.total_seats < 0:
        raise InvalidInputError("total_seats must not be negative")
    if not req.title.strip():
        raise InvalidInputError("title must not be empty")

    event = Event(
        title=req.title.strip(),
        description=req.description,
        location=req.location,
        date=req.date,
        total_seats=req.total_seats,
        available_seats=req.total_seats,
        version=1,
        created_by=user_id,
    )
    session.add(event)
    await session.commit()
    logger.info(f"event {event.id} created by user {user_id} with {event.total_seats} seats")
    return event


async def get_event(event_id: int, session: AsyncSession) -> Event:
    event = await session.get(Event, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


async def get_availability(event_id: int, session: AsyncSession) -> AvailabilityResponse:
    """
    Fetch the seat counters for display. Not serialized with ledger writes.
    """
    event = await get_event(event_id, session)
    return AvailabilityResponse(
        event_id=event.id,
        total_seats=event.total_seats,
        available_seats=event.available_seats,
        version=event.version,
    )


async def update_event(event_id: int, req: EventUpdateRequest, user_id: int, session: AsyncSession) -> Event:
    """
    Edit the descriptive fields of an event. Seat counters belong to the
    booking ledger; they may be echoed back unchanged but never edited here.
    """
    event = await get_event(event_id, session)
    if event.created_by != user_id:
        raise ForbiddenError("You can only edit your own events")

    for field in ("total_seats", "available_seats"):
        value = getattr(req, field)
        if value is not None and value != getattr(event, field):
            raise InvalidInputError(f"{field} cannot be changed by editing the event")

    changes = req.model_dump(include=set(EDITABLE_EVENT_FIELDS), exclude_unset=True)
    if "title" in changes:
        if changes["title"] is None or not changes["title"].strip():
            raise InvalidInputError("title must not be empty")
        changes["title"] = changes["title"].strip()

    for field, value in changes.items():
        setattr(event, field, value)
    await session.commit()
    logger.info(f"event {event.id} updated by user {user_id}: {sorted(changes)}")
    return event
