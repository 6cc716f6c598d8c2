from datetime import datetime, timezone

import sqlalchemy as sa

from app.database import Base

BOOKING_ACTIVE = "active"
BOOKING_CANCELLED = "cancelled"


def utcnow():
    return datetime.now(timezone.utc)


class Event(Base):
    __tablename__ = "events"

    id = sa.Column(sa.Integer, primary_key=True, autoincrement=True)
    title = sa.Column(sa.String(200), nullable=False)
    description = sa.Column(sa.Text, nullable=True)
    location = sa.Column(sa.String(200), nullable=True)
    date = sa.Column(sa.DateTime(timezone=True), nullable=True)
    total_seats = sa.Column(sa.Integer, nullable=False)
    available_seats = sa.Column(sa.Integer, nullable=False)
    version = sa.Column(sa.Integer, nullable=False, default=1, server_default="1")
    created_by = sa.Column(sa.Integer, nullable=True)
    created_at = sa.Column(sa.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        sa.CheckConstraint("total_seats >= 0", name="ck_events_total_seats_non_negative"),
        sa.CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_events_available_seats_in_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, available={self.available_seats}/{self.total_seats}, version={self.version})>"


class Booking(Base):
    __tablename__ = "bookings"

    id = sa.Column(sa.Integer, primary_key=True, autoincrement=True)
    event_id = sa.Column(sa.Integer, sa.ForeignKey("events.id"), nullable=False, index=True)
    user_id = sa.Column(sa.Integer, nullable=False, index=True)
    user_email = sa.Column(sa.String(320), nullable=True)
    seats = sa.Column(sa.Integer, nullable=False)
    status = sa.Column(sa.String(20), nullable=False, default=BOOKING_ACTIVE)
    created_at = sa.Column(sa.DateTime(timezone=True), nullable=False, default=utcnow)
    cancelled_at = sa.Column(sa.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        sa.CheckConstraint("seats > 0", name="ck_bookings_seats_positive"),
        sa.CheckConstraint(
            f"status IN ('{BOOKING_ACTIVE}', '{BOOKING_CANCELLED}')", name="ck_bookings_status"
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, event={self.event_id}, user={self.user_id}, seats={self.seats}, status={self.status})>"
