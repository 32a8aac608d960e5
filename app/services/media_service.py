# app/services/media_service.py
"""
Media synchronization for advertisement photos.

Ordering rules with respect to the database commit:
  - uploads happen BEFORE the commit that references them
    (a crash leaves an unreferenced blob, swept later);
  - deletes happen AFTER the commit that stops referencing them
    (a failed commit never points a listing at a deleted blob).
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from fastapi import HTTPException, status

from app.core.config import get_settings
from app.core.storage_utils import build_object_path, extract_path

logger = logging.getLogger(__name__)

settings = get_settings()

# Objects for advertisement photos live under this prefix.
RESOURCE_KIND = "advertisements"

ALLOWED_IMAGE_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class BlobStore(Protocol):
    bucket: str

    def upload(self, path: str, file_bytes: bytes, content_type: str) -> None: ...

    def mint_read_url(self, path: str, expires_in: int | None = None) -> str: ...

    def exists(self, path: str) -> bool: ...

    def delete(self, path: str) -> None: ...


@dataclass
class NewImage:
    """A photo received in the request, not yet uploaded."""

    filename: str | None
    content_type: str | None
    data: bytes


@dataclass
class MediaPlan:
    """
    Outcome of a synchronization.

    final_urls is the list to persist: kept URLs in caller order,
    then uploaded URLs in upload order.
    """

    final_urls: list[str]
    uploaded_paths: list[str] = field(default_factory=list)
    orphan_urls: list[str] = field(default_factory=list)

    def ordered(self) -> list[tuple[str, int]]:
        """(url, order) pairs with orders 1..n."""
        return [(url, order) for order, url in enumerate(self.final_urls, start=1)]


@dataclass
class CleanupReport:
    deleted: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class MediaService:
    """
    Computes and applies photo changes against the blob store.

    Responsibilities:
      - validate new images (type, size) before any upload
      - upload new images and mint signed read URLs
      - compute orphans (persisted - kept)
      - best-effort deletion of orphans after commit
    """

    # ----- Validation -----

    @staticmethod
    def validate_new_images(files: Iterable[NewImage]) -> None:
        for f in files:
            if f.content_type not in ALLOWED_IMAGE_CONTENT_TYPES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Unsupported image type. Allowed: JPEG, PNG, WEBP.",
                )
            if not f.data:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Received an empty image file.",
                )
            if len(f.data) > settings.MAX_IMAGE_BYTES:
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=(
                        "Image too large "
                        f"(max {settings.MAX_IMAGE_BYTES // 1024 // 1024}MB)."
                    ),
                )

    # ----- Synchronization -----

    def synchronize(
        self,
        store: BlobStore,
        owner: str,
        persisted_urls: list[str],
        keep_urls: list[str],
        new_files: list[NewImage],
    ) -> MediaPlan:
        """
        Resolve the final photo list and upload new photos.

        Steps:
          1. At least one photo must remain (kept + new).
          2. Kept URLs must be attached to the advertisement already.
          3. Orphans = persisted URLs not kept (exact match).
          4. Upload new files; abort everything on the first failure.

        Orphans are NOT deleted here; call delete_orphans after commit.

        Raises:
            HTTPException(400): no images, unknown kept URL, bad file.
            HTTPException(413): file too large.
            HTTPException(500): upload failed.
        """
        keep: list[str] = []
        for url in keep_urls:
            if url not in keep:
                keep.append(url)

        if len(keep) + len(new_files) < 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="At least one image is required",
            )

        persisted = set(persisted_urls)
        unknown = [url for url in keep if url not in persisted]
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="keepImageUrls contains an image that is not attached to this advertisement",
            )

        self.validate_new_images(new_files)

        kept = set(keep)
        orphans = [url for url in persisted_urls if url not in kept]

        uploaded = self.upload_all(store, owner, new_files)

        return MediaPlan(
            final_urls=keep + [url for _, url in uploaded],
            uploaded_paths=[path for path, _ in uploaded],
            orphan_urls=orphans,
        )

    def upload_all(
        self,
        store: BlobStore,
        owner: str,
        new_files: list[NewImage],
    ) -> list[tuple[str, str]]:
        """
        Upload files in order and return (path, signed_url) pairs.

        On failure, blobs uploaded earlier in the same call are removed
        (best-effort) and a 500 is raised; nothing references them yet.
        """
        uploaded: list[tuple[str, str]] = []

        for f in new_files:
            path = build_object_path(RESOURCE_KIND, owner, f.filename)
            try:
                store.upload(path, f.data, f.content_type)
                url = store.mint_read_url(path, settings.SIGNED_URL_EXPIRES_IN)
            except Exception:
                logger.exception("Upload of '%s' failed; aborting before commit", path)
                self.discard_paths(store, [p for p, _ in uploaded] + [path])
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Failed to upload image",
                )
            logger.info("Uploaded %s (%d bytes, %s)", path, len(f.data), f.content_type)
            uploaded.append((path, url))

        return uploaded

    # ----- Cleanup -----

    def discard_paths(self, store: BlobStore, paths: list[str]) -> None:
        """
        Best-effort removal of blobs that no row references
        (uploads of a request whose commit failed).
        """
        for path in paths:
            try:
                if store.exists(path):
                    store.delete(path)
            except Exception:
                logger.exception("Could not discard unreferenced upload '%s'", path)

    def delete_orphans(self, store: BlobStore, urls: list[str]) -> CleanupReport:
        """
        Delete blobs behind URLs that are no longer referenced.

        Best-effort and idempotent:
          - undecodable URL  -> logged, skipped
          - blob already gone -> counted as missing
          - storage error     -> logged, counted as failed
        Never raises.
        """
        report = CleanupReport()

        for url in urls:
            path = extract_path(url, store.bucket)
            if path is None:
                logger.warning("Cannot recover storage path from '%s'; skipping", url)
                report.skipped.append(url)
                continue

            try:
                if not store.exists(path):
                    logger.info("Orphan %s already removed", path)
                    report.missing.append(path)
                    continue
                store.delete(path)
            except Exception:
                logger.exception("Failed to delete orphaned image '%s'", path)
                report.failed.append(path)
                continue

            logger.info("Deleted orphaned image %s", path)
            report.deleted.append(path)

        return report

    def recoverable_urls(self, store: BlobStore, urls: list[str]) -> list[str]:
        """
        Filter URLs down to the ones whose blob can still be served.

        URLs outside the bucket are kept as-is; so are URLs whose
        existence cannot be checked right now.
        """
        kept: list[str] = []
        for url in urls:
            path = extract_path(url, store.bucket)
            if path is None:
                kept.append(url)
                continue
            try:
                if store.exists(path):
                    kept.append(url)
                else:
                    logger.info("Archived image %s no longer in storage; dropping", path)
            except Exception:
                logger.exception("Existence check failed for '%s'; keeping URL", path)
                kept.append(url)
        return kept
