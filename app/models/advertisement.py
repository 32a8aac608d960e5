# app/models/advertisement.py
import uuid
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import SQLModel, Field

# ACTIVE | INACTIVE
ADVERTISEMENT_STATUSES: tuple[str, ...] = ("ACTIVE", "INACTIVE")


class Advertisement(SQLModel, table=True):
    """
    Service listing owned by exactly one provider.

    Invariant (enforced by AdvertisementService):
      - a live advertisement always has at least one image
    """

    __tablename__ = "advertisements"
    __table_args__ = (
        UniqueConstraint(
            "service_provider_id",
            "title",
            name="uq_advertisements_provider_title",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)

    title: str = Field(
        max_length=255,
        index=True,
        description="Listing title (unique per provider)",
    )

    description: str | None = Field(default=None)

    price: float | None = Field(
        default=None,
        ge=0,
        description="Optional price, non-negative",
    )

    status: str = Field(
        default="ACTIVE",
        index=True,
        description="Lifecycle status: ACTIVE | INACTIVE",
    )

    start_date: date = Field(description="First day the service is offered")
    end_date: date | None = Field(
        default=None,
        description="Last day the service is offered (>= start_date)",
    )

    service_start_time: time | None = Field(default=None)
    service_end_time: time | None = Field(default=None)

    service_id: int = Field(
        foreign_key="services.id",
        index=True,
    )

    service_provider_id: int = Field(
        foreign_key="service_providers.id",
        index=True,
    )

    # Bumped on every edit; clients may send it back to detect concurrent edits
    version: int = Field(default=1, ge=1)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )


class AdvertisementImage(SQLModel, table=True):
    """
    Photo attached to an advertisement.

    Rows are replaced wholesale on every edit; `order` is 1-based and
    contiguous within one advertisement.
    """

    __tablename__ = "advertisement_images"
    __table_args__ = (
        UniqueConstraint(
            "advertisement_id",
            "order",
            name="uq_advertisement_images_order",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)

    advertisement_id: int = Field(
        foreign_key="advertisements.id",
        index=True,
        description="FK to advertisements.id",
    )

    image_url: str = Field(
        description="Signed read URL into Supabase Storage",
    )

    order: int = Field(
        ge=1,
        description="Position within the advertisement gallery (1-based)",
    )


class AdvertisementSpecies(SQLModel, table=True):
    """
    Link between an advertisement and a species it caters for.
    """

    __tablename__ = "advertisement_species"

    advertisement_id: int = Field(
        foreign_key="advertisements.id",
        primary_key=True,
    )

    species_id: int = Field(
        foreign_key="species.id",
        primary_key=True,
    )


class SavedAdvertisement(SQLModel, table=True):
    """
    A user's bookmark of an advertisement.
    """

    __tablename__ = "saved_advertisements"

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        primary_key=True,
    )

    advertisement_id: int = Field(
        foreign_key="advertisements.id",
        primary_key=True,
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class AdvertisementArchive(SQLModel, table=True):
    """
    Immutable snapshot of a deleted advertisement.

    Written in the same transaction that removes the live rows.
    Images are kept as plain data (`[{"url": ..., "order": ...}]`),
    not as image rows. The record is consumed (deleted) by restore.
    """

    __tablename__ = "advertisement_archives"

    id: int | None = Field(default=None, primary_key=True)

    original_advertisement_id: int = Field(
        index=True,
        description="id of the advertisement this snapshot was taken from",
    )

    title: str = Field(max_length=255)
    description: str | None = Field(default=None)
    price: float | None = Field(default=None)
    status: str = Field(default="ACTIVE")
    start_date: date
    end_date: date | None = Field(default=None)
    service_start_time: time | None = Field(default=None)
    service_end_time: time | None = Field(default=None)

    service_id: int = Field(foreign_key="services.id", index=True)
    service_provider_id: int = Field(
        foreign_key="service_providers.id",
        index=True,
    )

    images_urls: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    species_ids: list[int] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    created_at: datetime = Field(
        description="created_at of the original advertisement",
    )

    archived_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
