# app/models/booking.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Booking(SQLModel, table=True):
    """
    A client's booking of an advertisement.

    Bookings outlive the advertisement: when the advertisement is
    archived, advertisement_id is set to NULL.
    """

    __tablename__ = "bookings"

    id: int | None = Field(default=None, primary_key=True)

    advertisement_id: int | None = Field(
        default=None,
        foreign_key="advertisements.id",
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
        description="Client who made the booking",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class Review(SQLModel, table=True):
    """
    Client review left after a booking.
    """

    __tablename__ = "reviews"

    id: int | None = Field(default=None, primary_key=True)

    booking_id: int = Field(
        foreign_key="bookings.id",
        index=True,
    )

    rating: int = Field(ge=1, le=5)

    comment: str | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
