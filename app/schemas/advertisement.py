# app/schemas/advertisement.py
from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel, Field


class CamelModel(BaseModel):
    """
    Base for response bodies: snake_case in Python, camelCase on the wire.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ----- Input -----


class AdvertisementForm(SQLModel):
    """
    Validated advertisement fields, parsed from a multipart form.

    - status None means "keep current" on edit and ACTIVE on create.
    - species_ids empty clears species associations.
    - version None disables the concurrent-edit check.
    """

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    status: str | None = None
    start_date: date
    end_date: date | None = None
    service_start_time: time | None = None
    service_end_time: time | None = None
    service_id: int
    species_ids: list[int] = Field(default_factory=list)
    keep_image_urls: list[str] = Field(default_factory=list)
    version: int | None = None

    def column_values(self, current_status: str | None = None) -> dict:
        """
        Scalar column values to write on the advertisement row.
        """
        return {
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "status": self.status or current_status or "ACTIVE",
            "start_date": self.start_date,
            "end_date": self.end_date,
            "service_start_time": self.service_start_time,
            "service_end_time": self.service_end_time,
            "service_id": self.service_id,
        }


# ----- Output -----


class ImageRead(CamelModel):
    image_url: str
    order: int


class SpeciesRead(CamelModel):
    id: int
    name: str


class ProviderRead(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None


class CityRead(CamelModel):
    id_city: int
    name: str
    image_url: str | None = None


class AdvertisementRead(CamelModel):
    """
    Public view of a live advertisement.
    """

    id: int
    title: str
    description: str | None = None
    price: float | None = None
    status: str
    start_date: date
    end_date: date | None = None
    service_start_time: str | None = None  # "HH:MM"
    service_end_time: str | None = None  # "HH:MM"
    service_id: int
    service: str | None = None
    service_provider_id: int
    version: int
    provider: ProviderRead | None = None
    city: CityRead | None = None
    images: list[ImageRead] = []
    species: list[SpeciesRead] = []
    average_rating: float | None = None
    review_count: int = 0


class AdvertisementSummary(CamelModel):
    """
    Row in the provider's own advertisement list.
    """

    id: int
    title: str
    status: str
    start_date: date
    end_date: date | None = None
    service_start_time: str | None = None
    service_end_time: str | None = None
    key_image: str | None = None
    species: list[SpeciesRead] = []


class ArchivedAdvertisementRead(CamelModel):
    id: int
    original_advertisement_id: int
    title: str
    description: str | None = None
    price: float | None = None
    status: str
    start_date: date
    end_date: date | None = None
    service: str | None = None
    key_image: str | None = None
    images: list[ImageRead] = []
    archived_at: datetime


# ----- Envelopes -----


class AdvertisementResponse(CamelModel):
    success: bool = True
    advertisement: AdvertisementRead


class AdvertisementListResponse(CamelModel):
    success: bool = True
    advertisements: list[AdvertisementSummary]


class ArchivedListResponse(CamelModel):
    success: bool = True
    advertisements: list[ArchivedAdvertisementRead]


class DeleteResponse(CamelModel):
    success: bool = True
    archive_id: int


class RestoreResponse(CamelModel):
    success: bool = True
    advertisement_id: int
