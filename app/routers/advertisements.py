# app/routers/advertisements.py
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    UploadFile,
    status,
)
from sqlmodel import Session

from app.core.auth import require_advertisement_owner, require_auth
from app.core.storage_utils import SupabaseBlobStore, get_blob_store
from app.database import get_session
from app.models.advertisement import Advertisement
from app.models.user import User
from app.repositories.advertisement_repo import AdvertisementRepository
from app.schemas.advertisement import (
    AdvertisementListResponse,
    AdvertisementResponse,
    ArchivedListResponse,
    DeleteResponse,
    RestoreResponse,
)
from app.services.advertisement_form import parse_advertisement_form
from app.services.advertisement_service import AdvertisementService
from app.services.media_service import MediaService, NewImage

router = APIRouter(prefix="/advertisements", tags=["Advertisements"])

repo = AdvertisementRepository()
service = AdvertisementService(repo, MediaService())


def _read_uploads(files: list[UploadFile] | None) -> list[NewImage]:
    return [
        NewImage(filename=f.filename, content_type=f.content_type, data=f.file.read())
        for f in files or []
        if f.filename or f.size
    ]


# -------- Provider endpoints --------


@router.get("", response_model=AdvertisementListResponse)
def list_my_advertisements(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    List advertisements of every provider account the caller owns.
    """
    return AdvertisementListResponse(
        advertisements=service.list_for_user(session, current_user)
    )


@router.post(
    "",
    response_model=AdvertisementResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_advertisement(
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    price: str | None = Form(default=None),
    status_value: str | None = Form(default=None, alias="status"),
    start_date: str | None = Form(default=None, alias="startDate"),
    end_date: str | None = Form(default=None, alias="endDate"),
    service_start_time: str | None = Form(default=None, alias="serviceStartTime"),
    service_end_time: str | None = Form(default=None, alias="serviceEndTime"),
    service_id: str | None = Form(default=None, alias="serviceId"),
    species_ids: str | None = Form(default=None, alias="speciesIds"),
    images: list[UploadFile] | None = File(default=None),
    session: Session = Depends(get_session),
    store: SupabaseBlobStore = Depends(get_blob_store),
    current_user: User = Depends(require_auth),
):
    """
    Create an advertisement with at least one photo (multipart).

    Auth:
      - Requires valid Supabase JWT of an active service provider.
    """
    form = parse_advertisement_form(
        title=title,
        description=description,
        price=price,
        status_value=status_value,
        start_date=start_date,
        end_date=end_date,
        service_start_time=service_start_time,
        service_end_time=service_end_time,
        service_id=service_id,
        species_ids=species_ids,
    )
    advertisement = service.create_advertisement(
        session, store, current_user, form, _read_uploads(images)
    )
    return AdvertisementResponse(advertisement=advertisement)


@router.get("/archived", response_model=ArchivedListResponse)
def list_archived_advertisements(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    List archive snapshots of the caller's deleted advertisements.
    """
    return ArchivedListResponse(
        advertisements=service.list_archived(session, current_user)
    )


@router.post("/restore/{archive_id}", response_model=RestoreResponse)
def restore_advertisement(
    archive_id: int,
    session: Session = Depends(get_session),
    store: SupabaseBlobStore = Depends(get_blob_store),
    current_user: User = Depends(require_auth),
):
    """
    Recreate a live advertisement from an archive snapshot.

    Auth:
      - Requires the owning, active service provider.
    """
    advertisement = service.restore_advertisement(session, store, current_user, archive_id)
    return RestoreResponse(advertisement_id=advertisement.id)


# -------- Single advertisement --------


@router.get("/{advertisement_id}", response_model=AdvertisementResponse)
def get_advertisement(
    advertisement_id: int,
    session: Session = Depends(get_session),
):
    """
    Public view of an advertisement.

    - Public endpoint.
    """
    return AdvertisementResponse(
        advertisement=service.get_public_view(session, advertisement_id)
    )


@router.put("/{advertisement_id}", response_model=AdvertisementResponse)
def update_advertisement(
    advertisement: Advertisement = Depends(require_advertisement_owner),
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    price: str | None = Form(default=None),
    status_value: str | None = Form(default=None, alias="status"),
    start_date: str | None = Form(default=None, alias="startDate"),
    end_date: str | None = Form(default=None, alias="endDate"),
    service_start_time: str | None = Form(default=None, alias="serviceStartTime"),
    service_end_time: str | None = Form(default=None, alias="serviceEndTime"),
    service_id: str | None = Form(default=None, alias="serviceId"),
    species_ids: str | None = Form(default=None, alias="speciesIds"),
    keep_image_urls: str | None = Form(default=None, alias="keepImageUrls"),
    version: str | None = Form(default=None),
    new_images: list[UploadFile] | None = File(default=None, alias="newImages"),
    session: Session = Depends(get_session),
    store: SupabaseBlobStore = Depends(get_blob_store),
    current_user: User = Depends(require_auth),
):
    """
    Edit an advertisement (multipart).

    - keepImageUrls: JSON array of current photo URLs to keep, in order.
    - newImages: photos appended after the kept ones.
    - version: optional; a stale value is rejected with 409.

    Auth:
      - Requires the owning, active service provider.
    """
    form = parse_advertisement_form(
        title=title,
        description=description,
        price=price,
        status_value=status_value,
        start_date=start_date,
        end_date=end_date,
        service_start_time=service_start_time,
        service_end_time=service_end_time,
        service_id=service_id,
        species_ids=species_ids,
        keep_image_urls=keep_image_urls,
        version=version,
    )
    updated = service.update_advertisement(
        session,
        store,
        current_user,
        advertisement,
        form,
        _read_uploads(new_images),
    )
    return AdvertisementResponse(advertisement=updated)


@router.delete("/{advertisement_id}", response_model=DeleteResponse)
def delete_advertisement(
    advertisement: Advertisement = Depends(require_advertisement_owner),
    session: Session = Depends(get_session),
    store: SupabaseBlobStore = Depends(get_blob_store),
):
    """
    Archive and delete an advertisement; its photos are removed
    from Storage after the database commit.

    Auth:
      - Requires the owning, active service provider.
    """
    archive = service.delete_advertisement(session, store, advertisement)
    return DeleteResponse(archive_id=archive.id)
