# app/services/advertisement_service.py
import logging
from typing import Callable, TypeVar

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.auth import authorize_provider, require_active_provider
from app.models.advertisement import Advertisement, AdvertisementArchive
from app.models.user import ServiceProvider, User
from app.repositories.advertisement_repo import AdvertisementRepository
from app.schemas.advertisement import (
    AdvertisementForm,
    AdvertisementRead,
    AdvertisementSummary,
    ArchivedAdvertisementRead,
    CityRead,
    ImageRead,
    ProviderRead,
    SpeciesRead,
)
from app.services.media_service import BlobStore, MediaPlan, MediaService, NewImage

logger = logging.getLogger(__name__)

T = TypeVar("T")

DUPLICATE_TITLE = "An advertisement with this title already exists for this service provider"

TITLE_CONSTRAINT = "uq_advertisements_provider_title"
# SQLite reports the columns instead of the constraint name
_SQLITE_TITLE_COLUMNS = "advertisements.service_provider_id, advertisements.title"


def _hhmm(value) -> str | None:
    return value.strftime("%H:%M") if value is not None else None


def _is_duplicate_title(exc: IntegrityError) -> bool:
    diag = getattr(exc.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint is not None:
        return constraint == TITLE_CONSTRAINT
    message = str(exc.orig)
    return TITLE_CONSTRAINT in message or _SQLITE_TITLE_COLUMNS in message


class StaleVersion(Exception):
    """The advertisement changed since the client loaded it."""


class AdvertisementService:
    """
    Business logic for the advertisement lifecycle.

    Responsibilities:
      - validation of references (service, species) before any mutation
      - orchestration of photo uploads / orphan cleanup around the commit
      - one atomic commit per operation (create, edit, archive, restore)
      - archive snapshot before the live rows are removed
    """

    def __init__(self, repo: AdvertisementRepository, media: MediaService):
        self.repo = repo
        self.media = media

    # ----- Helpers -----

    def _run_in_transaction(
        self,
        session: Session,
        action: str,
        work: Callable[[], T],
    ) -> T:
        """
        Run `work` and commit; roll back everything on any database error.

        Raises:
            HTTPException(409): duplicate title or stale version.
            HTTPException(500): any other database failure, other
                integrity violations (e.g. a dangling foreign key) included.
        """
        try:
            result = work()
            session.commit()
        except StaleVersion:
            session.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Advertisement was modified by another request",
            )
        except IntegrityError as exc:
            session.rollback()
            if not _is_duplicate_title(exc):
                logger.exception("Integrity error during advertisement %s; rolled back", action)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Internal server error",
                )
            logger.warning("Duplicate title during advertisement %s", action)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=DUPLICATE_TITLE,
            )
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Database error during advertisement %s; rolled back", action)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Internal server error",
            )
        except Exception:
            session.rollback()
            raise
        return result

    def _validate_references(self, session: Session, form: AdvertisementForm) -> None:
        """
        Service must exist; every species id must exist
        (count of matching rows == count of requested ids).
        """
        if self.repo.get_service(session, form.service_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Service not found",
            )

        if form.species_ids:
            found = self.repo.count_existing_species(session, form.species_ids)
            if found != len(form.species_ids):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="One or more invalid species IDs",
                )

    def _discard_on_failure(
        self,
        store: BlobStore,
        plan: MediaPlan,
        persist: Callable[[], T],
    ) -> T:
        """
        Run `persist`; if it raises for any reason, remove this
        request's uploads before re-raising.
        """
        try:
            return persist()
        except Exception:
            # Nothing references this request's uploads
            if plan.uploaded_paths:
                logger.warning(
                    "Persisting advertisement failed; discarding %d uploads",
                    len(plan.uploaded_paths),
                )
            self.media.discard_paths(store, plan.uploaded_paths)
            raise

    # ----- Reads -----

    def get_advertisement(self, session: Session, advertisement_id: int) -> Advertisement:
        advertisement = self.repo.get_by_id(session, advertisement_id)
        if advertisement is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Advertisement not found",
            )
        return advertisement

    def get_public_view(self, session: Session, advertisement_id: int) -> AdvertisementRead:
        """
        Fields, ordered images, species, provider contact, city
        and aggregate rating.
        """
        ad = self.get_advertisement(session, advertisement_id)
        service = self.repo.get_service(session, ad.service_id)
        user, city = self.repo.provider_contact(session, ad.service_provider_id)
        average, count = self.repo.rating_summary(session, ad.id)

        return AdvertisementRead(
            id=ad.id,
            title=ad.title,
            description=ad.description,
            price=ad.price,
            status=ad.status,
            start_date=ad.start_date,
            end_date=ad.end_date,
            service_start_time=_hhmm(ad.service_start_time),
            service_end_time=_hhmm(ad.service_end_time),
            service_id=ad.service_id,
            service=service.name if service else None,
            service_provider_id=ad.service_provider_id,
            version=ad.version,
            provider=ProviderRead.model_validate(user) if user else None,
            city=(
                CityRead(id_city=city.id, name=city.name, image_url=city.image_url)
                if city
                else None
            ),
            images=[
                ImageRead(image_url=img.image_url, order=img.order)
                for img in self.repo.list_images(session, ad.id)
            ],
            species=[
                SpeciesRead(id=s.id, name=s.name)
                for s in self.repo.list_species(session, ad.id)
            ],
            average_rating=average,
            review_count=count,
        )

    def _provider_ids(self, session: Session, user: User) -> list[int]:
        stmt = select(ServiceProvider.id).where(ServiceProvider.user_id == user.id)
        return list(session.exec(stmt).all())

    def list_for_user(self, session: Session, user: User) -> list[AdvertisementSummary]:
        ads = self.repo.list_for_providers(session, self._provider_ids(session, user))
        keys = self.repo.key_images(session, [ad.id for ad in ads])

        return [
            AdvertisementSummary(
                id=ad.id,
                title=ad.title,
                status=ad.status,
                start_date=ad.start_date,
                end_date=ad.end_date,
                service_start_time=_hhmm(ad.service_start_time),
                service_end_time=_hhmm(ad.service_end_time),
                key_image=keys.get(ad.id),
                species=[
                    SpeciesRead(id=s.id, name=s.name)
                    for s in self.repo.list_species(session, ad.id)
                ],
            )
            for ad in ads
        ]

    # ----- Create -----

    def create_with_images(
        self,
        session: Session,
        provider_id: int,
        form: AdvertisementForm,
        images: list[tuple[str, int]],
    ) -> Advertisement:
        """
        Insert an advertisement with already-stored images in one commit.

        Args:
            images: (url, order) pairs; orders must be 1..n.
        """
        self._validate_references(session, form)
        return self._insert_with_images(session, provider_id, form, images)

    def _insert_with_images(
        self,
        session: Session,
        provider_id: int,
        form: AdvertisementForm,
        images: list[tuple[str, int]],
    ) -> Advertisement:
        # References are validated by the caller
        if not images:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="At least one image is required",
            )
        if sorted(order for _, order in images) != list(range(1, len(images) + 1)):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Image order must be contiguous starting at 1",
            )

        def work() -> Advertisement:
            ad = self.repo.create(
                session,
                Advertisement(
                    service_provider_id=provider_id,
                    **form.column_values(),
                ),
            )
            self.repo.replace_images(session, ad.id, images)
            self.repo.replace_species(session, ad.id, form.species_ids)
            return ad

        ad = self._run_in_transaction(session, "create", work)
        logger.info("Created advertisement %s with %d images", ad.id, len(images))
        return ad

    def create_advertisement(
        self,
        session: Session,
        store: BlobStore,
        user: User,
        form: AdvertisementForm,
        new_files: list[NewImage],
    ) -> AdvertisementRead:
        """
        Create an advertisement for the user's active provider account.

        Steps:
          1. Active provider check, reference validation.
          2. Upload photos (fail fast, nothing written yet).
          3. One commit: advertisement + images + species.
        """
        provider = require_active_provider(session, user)
        self._validate_references(session, form)

        plan = self.media.synchronize(
            store,
            owner=str(user.id),
            persisted_urls=[],
            keep_urls=[],
            new_files=new_files,
        )

        ad = self._discard_on_failure(
            store,
            plan,
            lambda: self._insert_with_images(session, provider.id, form, plan.ordered()),
        )

        return self.get_public_view(session, ad.id)

    # ----- Update -----

    def update_advertisement(
        self,
        session: Session,
        store: BlobStore,
        user: User,
        advertisement: Advertisement,
        form: AdvertisementForm,
        new_files: list[NewImage],
    ) -> AdvertisementRead:
        """
        Edit an advertisement the user is already authorized for.

        Steps:
          1. Version check (if sent), reference validation.
          2. Media sync: validate + upload new photos, compute orphans.
          3. One commit: replace images, replace species, update fields.
          4. After commit: best-effort deletion of orphaned photos.

        A failed commit leaves the database untouched and removes
        this request's uploads.
        """
        advertisement_id = advertisement.id

        if form.version is not None and form.version != advertisement.version:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Advertisement was modified by another request",
            )

        self._validate_references(session, form)

        plan = self.media.synchronize(
            store,
            owner=str(user.id),
            persisted_urls=self.repo.list_image_urls(session, advertisement_id),
            keep_urls=form.keep_image_urls,
            new_files=new_files,
        )
        values = form.column_values(current_status=advertisement.status)

        def work() -> None:
            self.repo.replace_images(session, advertisement_id, plan.ordered())
            self.repo.replace_species(session, advertisement_id, form.species_ids)
            updated = self.repo.update_fields(
                session,
                advertisement_id,
                values,
                expected_version=form.version,
            )
            if not updated:
                raise StaleVersion()

        self._discard_on_failure(
            store,
            plan,
            lambda: self._run_in_transaction(session, "update", work),
        )
        logger.info(
            "Updated advertisement %s: %d images (%d new, %d orphaned)",
            advertisement_id,
            len(plan.final_urls),
            len(plan.uploaded_paths),
            len(plan.orphan_urls),
        )

        self.media.delete_orphans(store, plan.orphan_urls)
        return self.get_public_view(session, advertisement_id)

    # ----- Archive / restore -----

    def delete_advertisement(
        self,
        session: Session,
        store: BlobStore,
        advertisement: Advertisement,
    ) -> AdvertisementArchive:
        """
        Archive then delete an advertisement.

        One commit:
          - insert the archive snapshot (fields + ordered image URLs + species)
          - delete images, reviews of its bookings, bookmarks, species links
          - detach bookings, delete the advertisement
        After commit: best-effort deletion of the photo blobs.
        """
        images = self.repo.list_images(session, advertisement.id)
        image_urls = [img.image_url for img in images]

        archive = AdvertisementArchive(
            original_advertisement_id=advertisement.id,
            title=advertisement.title,
            description=advertisement.description,
            price=advertisement.price,
            status=advertisement.status,
            start_date=advertisement.start_date,
            end_date=advertisement.end_date,
            service_start_time=advertisement.service_start_time,
            service_end_time=advertisement.service_end_time,
            service_id=advertisement.service_id,
            service_provider_id=advertisement.service_provider_id,
            images_urls=[{"url": img.image_url, "order": img.order} for img in images],
            species_ids=self.repo.species_ids(session, advertisement.id),
            created_at=advertisement.created_at,
        )
        original_id = advertisement.id

        def work() -> AdvertisementArchive:
            self.repo.insert_archive(session, archive)
            self.repo.delete_cascade(session, advertisement)
            return archive

        self._run_in_transaction(session, "delete", work)
        logger.info("Archived advertisement %s as archive %s", original_id, archive.id)

        self.media.delete_orphans(store, image_urls)
        return archive

    def list_archived(self, session: Session, user: User) -> list[ArchivedAdvertisementRead]:
        archives = self.repo.list_archives_for_providers(
            session, self._provider_ids(session, user)
        )
        result: list[ArchivedAdvertisementRead] = []
        for archive in archives:
            images = sorted(archive.images_urls or [], key=lambda img: img.get("order", 0))
            service = self.repo.get_service(session, archive.service_id)
            result.append(
                ArchivedAdvertisementRead(
                    id=archive.id,
                    original_advertisement_id=archive.original_advertisement_id,
                    title=archive.title,
                    description=archive.description,
                    price=archive.price,
                    status=archive.status,
                    start_date=archive.start_date,
                    end_date=archive.end_date,
                    service=service.name if service else None,
                    key_image=images[0]["url"] if images else None,
                    images=[
                        ImageRead(image_url=img["url"], order=img["order"])
                        for img in images
                    ],
                    archived_at=archive.archived_at,
                )
            )
        return result

    def restore_advertisement(
        self,
        session: Session,
        store: BlobStore,
        user: User,
        archive_id: int,
    ) -> Advertisement:
        """
        Recreate a live advertisement from its archive snapshot.

        - only the owning, active provider may restore
        - the title must be free for that provider
        - photos whose blobs are gone are dropped, the rest renumbered;
          with no photo left the restore is refused
        - one commit: advertisement + images + species, archive removed
        """
        archive = self.repo.get_archive(session, archive_id)
        if archive is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Archived advertisement not found",
            )

        authorize_provider(
            session,
            user,
            archive.service_provider_id,
            action="restore this advertisement",
        )

        if self.repo.title_taken(session, archive.service_provider_id, archive.title):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=DUPLICATE_TITLE,
            )

        if self.repo.get_service(session, archive.service_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Service not found",
            )

        snapshot = sorted(archive.images_urls or [], key=lambda img: img.get("order", 0))
        urls = self.media.recoverable_urls(store, [img["url"] for img in snapshot])
        if not urls:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Archived advertisement has no recoverable images",
            )

        species_ids = self.repo.existing_species_ids(session, archive.species_ids or [])

        def work() -> Advertisement:
            ad = self.repo.create(
                session,
                Advertisement(
                    title=archive.title,
                    description=archive.description,
                    price=archive.price,
                    status=archive.status,
                    start_date=archive.start_date,
                    end_date=archive.end_date,
                    service_start_time=archive.service_start_time,
                    service_end_time=archive.service_end_time,
                    service_id=archive.service_id,
                    service_provider_id=archive.service_provider_id,
                ),
            )
            self.repo.replace_images(
                session,
                ad.id,
                [(url, order) for order, url in enumerate(urls, start=1)],
            )
            self.repo.replace_species(session, ad.id, species_ids)
            self.repo.delete_archive(session, archive)
            return ad

        ad = self._run_in_transaction(session, "restore", work)
        logger.info("Restored archive %s as advertisement %s", archive_id, ad.id)
        return ad
