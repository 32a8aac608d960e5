# app/services/orphan_sweep.py
"""
Background sweep for photo blobs nothing references any more.

Inline cleanup after edits/deletes is best-effort; blobs it could not
remove (crash between upload and commit, storage errors, URLs that did
not decode) are collected here.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlmodel import Session

from app.core.storage_utils import extract_path
from app.repositories.advertisement_repo import AdvertisementRepository
from app.services.media_service import RESOURCE_KIND

logger = logging.getLogger(__name__)


class ListableBlobStore(Protocol):
    bucket: str

    def list_paths(self, prefix: str) -> list[tuple[str, datetime | None]]: ...

    def delete(self, path: str) -> None: ...


@dataclass
class SweepReport:
    scanned: int = 0
    referenced: int = 0
    too_recent: int = 0
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def sweep_orphaned_blobs(
    session: Session,
    store: ListableBlobStore,
    grace: timedelta,
    prefix: str = RESOURCE_KIND,
    now: datetime | None = None,
    dry_run: bool = False,
) -> SweepReport:
    """
    Delete blobs under `prefix` that no live image and no archive
    snapshot references.

    Blobs younger than `grace` (or of unknown age) are left alone:
    they may belong to a request that uploaded but has not committed yet.
    """
    now = now or datetime.now(timezone.utc)
    repo = AdvertisementRepository()

    referenced_paths = {
        path
        for path in (
            extract_path(url, store.bucket) for url in repo.referenced_image_urls(session)
        )
        if path is not None
    }

    report = SweepReport()
    for path, created_at in store.list_paths(prefix):
        report.scanned += 1

        if path in referenced_paths:
            report.referenced += 1
            continue

        if created_at is None or now - created_at < grace:
            report.too_recent += 1
            continue

        if dry_run:
            logger.info("[dry-run] would delete orphan %s", path)
            report.deleted.append(path)
            continue

        try:
            store.delete(path)
        except Exception:
            logger.exception("Sweep failed to delete '%s'", path)
            report.failed.append(path)
            continue

        logger.info("Swept orphan %s", path)
        report.deleted.append(path)

    logger.info(
        "Orphan sweep done: scanned=%d referenced=%d too_recent=%d deleted=%d failed=%d",
        report.scanned,
        report.referenced,
        report.too_recent,
        len(report.deleted),
        len(report.failed),
    )
    return report
