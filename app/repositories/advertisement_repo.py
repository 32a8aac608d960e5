# app/repositories/advertisement_repo.py
from typing import Any

from sqlalchemy import delete, func, update
from sqlmodel import Session, select

from app.models.advertisement import (
    Advertisement,
    AdvertisementArchive,
    AdvertisementImage,
    AdvertisementSpecies,
    SavedAdvertisement,
)
from app.models.booking import Booking, Review
from app.models.catalog import Service, Species
from app.models.user import City, ServiceProvider, User


class AdvertisementRepository:
    """
    Data access layer for advertisements, their images, species links
    and archive snapshots.

    NOTE:
      - No commits here; every mutating operation is a multi-step
        transaction and the service is responsible for session.commit().
    """

    # ---- Advertisements ----

    def get_by_id(self, session: Session, advertisement_id: int) -> Advertisement | None:
        return session.get(Advertisement, advertisement_id)

    def list_for_providers(
        self,
        session: Session,
        provider_ids: list[int],
    ) -> list[Advertisement]:
        if not provider_ids:
            return []
        stmt = (
            select(Advertisement)
            .where(Advertisement.service_provider_id.in_(provider_ids))
            .order_by(Advertisement.created_at.desc())
        )
        return list(session.exec(stmt).all())

    def title_taken(self, session: Session, provider_id: int, title: str) -> bool:
        stmt = select(Advertisement.id).where(
            Advertisement.service_provider_id == provider_id,
            Advertisement.title == title,
        )
        return session.exec(stmt).first() is not None

    def create(self, session: Session, advertisement: Advertisement) -> Advertisement:
        """
        Insert an Advertisement without committing, but ensure id is populated.
        """
        session.add(advertisement)
        session.flush()
        session.refresh(advertisement)
        return advertisement

    def update_fields(
        self,
        session: Session,
        advertisement_id: int,
        values: dict[str, Any],
        expected_version: int | None = None,
    ) -> bool:
        """
        Write scalar columns and bump version.

        With expected_version, the row is only updated if its version
        still matches. Returns False when no row was updated.
        """
        stmt = update(Advertisement).where(Advertisement.id == advertisement_id)
        if expected_version is not None:
            stmt = stmt.where(Advertisement.version == expected_version)
        stmt = stmt.values(**values, version=Advertisement.version + 1)

        result = session.exec(stmt)
        return result.rowcount > 0

    # ---- Images ----

    def list_images(self, session: Session, advertisement_id: int) -> list[AdvertisementImage]:
        stmt = (
            select(AdvertisementImage)
            .where(AdvertisementImage.advertisement_id == advertisement_id)
            .order_by(AdvertisementImage.order)
        )
        return list(session.exec(stmt).all())

    def list_image_urls(self, session: Session, advertisement_id: int) -> list[str]:
        return [img.image_url for img in self.list_images(session, advertisement_id)]

    def key_images(self, session: Session, advertisement_ids: list[int]) -> dict[int, str]:
        """First image (order 1) per advertisement."""
        if not advertisement_ids:
            return {}
        stmt = (
            select(AdvertisementImage)
            .where(AdvertisementImage.advertisement_id.in_(advertisement_ids))
            .order_by(AdvertisementImage.advertisement_id, AdvertisementImage.order)
        )
        keys: dict[int, str] = {}
        for img in session.exec(stmt).all():
            keys.setdefault(img.advertisement_id, img.image_url)
        return keys

    def replace_images(
        self,
        session: Session,
        advertisement_id: int,
        ordered: list[tuple[str, int]],
    ) -> None:
        """
        Delete every image row of the advertisement, insert `ordered`.
        """
        session.exec(
            delete(AdvertisementImage).where(
                AdvertisementImage.advertisement_id == advertisement_id
            )
        )
        session.add_all(
            AdvertisementImage(
                advertisement_id=advertisement_id,
                image_url=url,
                order=order,
            )
            for url, order in ordered
        )
        session.flush()

    # ---- Species ----

    def count_existing_species(self, session: Session, species_ids: list[int]) -> int:
        if not species_ids:
            return 0
        stmt = select(func.count()).select_from(Species).where(Species.id.in_(species_ids))
        value = session.exec(stmt).one()
        return int(value or 0)

    def existing_species_ids(self, session: Session, species_ids: list[int]) -> list[int]:
        if not species_ids:
            return []
        stmt = select(Species.id).where(Species.id.in_(species_ids))
        found = set(session.exec(stmt).all())
        return [sid for sid in species_ids if sid in found]

    def list_species(self, session: Session, advertisement_id: int) -> list[Species]:
        stmt = (
            select(Species)
            .join(AdvertisementSpecies, AdvertisementSpecies.species_id == Species.id)
            .where(AdvertisementSpecies.advertisement_id == advertisement_id)
            .order_by(Species.id)
        )
        return list(session.exec(stmt).all())

    def species_ids(self, session: Session, advertisement_id: int) -> list[int]:
        return [s.id for s in self.list_species(session, advertisement_id)]

    def replace_species(
        self,
        session: Session,
        advertisement_id: int,
        species_ids: list[int],
    ) -> None:
        """
        Delete every species link of the advertisement, insert `species_ids`.
        An empty list just clears the links.
        """
        session.exec(
            delete(AdvertisementSpecies).where(
                AdvertisementSpecies.advertisement_id == advertisement_id
            )
        )
        session.add_all(
            AdvertisementSpecies(advertisement_id=advertisement_id, species_id=sid)
            for sid in species_ids
        )
        session.flush()

    # ---- Lookups for the public view ----

    def get_service(self, session: Session, service_id: int) -> Service | None:
        return session.get(Service, service_id)

    def provider_contact(
        self,
        session: Session,
        provider_id: int,
    ) -> tuple[User | None, City | None]:
        stmt = (
            select(User, City)
            .join(ServiceProvider, ServiceProvider.user_id == User.id)
            .join(City, City.id == User.city_id, isouter=True)
            .where(ServiceProvider.id == provider_id)
        )
        row = session.exec(stmt).first()
        if row is None:
            return None, None
        return row[0], row[1]

    def rating_summary(
        self,
        session: Session,
        advertisement_id: int,
    ) -> tuple[float | None, int]:
        stmt = (
            select(func.avg(Review.rating), func.count(Review.id))
            .join(Booking, Booking.id == Review.booking_id)
            .where(Booking.advertisement_id == advertisement_id)
        )
        avg, count = session.exec(stmt).one()
        return (float(avg) if avg is not None else None), int(count or 0)

    # ---- Archive ----

    def insert_archive(
        self,
        session: Session,
        archive: AdvertisementArchive,
    ) -> AdvertisementArchive:
        session.add(archive)
        session.flush()
        return archive

    def delete_cascade(self, session: Session, advertisement: Advertisement) -> None:
        """
        Remove the live advertisement and everything hanging off it:
        images, reviews of its bookings, bookmarks, species links.
        Bookings themselves are kept and detached.
        """
        advertisement_id = advertisement.id
        booking_ids = select(Booking.id).where(Booking.advertisement_id == advertisement_id)

        session.exec(
            delete(AdvertisementImage).where(
                AdvertisementImage.advertisement_id == advertisement_id
            )
        )
        session.exec(delete(Review).where(Review.booking_id.in_(booking_ids)))
        session.exec(
            delete(SavedAdvertisement).where(
                SavedAdvertisement.advertisement_id == advertisement_id
            )
        )
        session.exec(
            delete(AdvertisementSpecies).where(
                AdvertisementSpecies.advertisement_id == advertisement_id
            )
        )
        session.exec(
            update(Booking)
            .where(Booking.advertisement_id == advertisement_id)
            .values(advertisement_id=None)
        )
        session.delete(advertisement)
        session.flush()

    def get_archive(self, session: Session, archive_id: int) -> AdvertisementArchive | None:
        return session.get(AdvertisementArchive, archive_id)

    def list_archives_for_providers(
        self,
        session: Session,
        provider_ids: list[int],
    ) -> list[AdvertisementArchive]:
        if not provider_ids:
            return []
        stmt = (
            select(AdvertisementArchive)
            .where(AdvertisementArchive.service_provider_id.in_(provider_ids))
            .order_by(AdvertisementArchive.archived_at.desc())
        )
        return list(session.exec(stmt).all())

    def delete_archive(self, session: Session, archive: AdvertisementArchive) -> None:
        session.delete(archive)
        session.flush()

    # ---- Storage references ----

    def referenced_image_urls(self, session: Session) -> set[str]:
        """
        Every photo URL still referenced by a live image or an archive snapshot.
        """
        urls = set(session.exec(select(AdvertisementImage.image_url)).all())
        for images in session.exec(select(AdvertisementArchive.images_urls)).all():
            for img in images or []:
                if img.get("url"):
                    urls.add(img["url"])
        return urls
