# app/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class City(SQLModel, table=True):
    """
    City a user lives in; shown next to every advertisement.
    """

    __tablename__ = "cities"

    id: int | None = Field(default=None, primary_key=True)

    name: str = Field(max_length=100, index=True)

    image_url: str | None = Field(
        default=None,
        description="Optional cover image for the city",
    )


class User(SQLModel, table=True):
    """
    Persistent user profile.

    Identity:
      - id: MUST match Supabase auth.users.id (UUID from JWT "sub")

    This table is *not* responsible for password hashes. Supabase Auth
    stores the password in its own schema. We only mirror identity
    and contact data shown on listings.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email from Supabase auth.users",
    )

    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)
    phone_number: str | None = Field(default=None, max_length=30)

    city_id: int | None = Field(
        default=None,
        foreign_key="cities.id",
        index=True,
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )


class ServiceProvider(SQLModel, table=True):
    """
    Provider account owned by a user.

    Only active providers may create, edit, delete or restore
    their advertisements.
    """

    __tablename__ = "service_providers"

    id: int | None = Field(default=None, primary_key=True)

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
        description="FK to users.id (owner of the provider account)",
    )

    is_active: bool = Field(
        default=True,
        index=True,
        description="Inactive providers keep their listings but cannot mutate them",
    )
