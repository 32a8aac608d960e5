from datetime import date, datetime, timedelta, timezone

from app.models.advertisement import AdvertisementArchive
from app.services.orphan_sweep import sweep_orphaned_blobs

from conftest import provider_of

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
GRACE = timedelta(hours=1)
OLD = NOW - timedelta(days=2)


def test_sweep_deletes_only_old_unreferenced_blobs(session, blob_store, owner, make_advertisement):
    make_advertisement(owner, n_images=1)
    for path in list(blob_store.blobs):
        blob_store.put(path, created_at=OLD)
    blob_store.put("advertisements/u/orphan.png", created_at=OLD)
    blob_store.put("advertisements/u/in-flight.png", created_at=NOW - timedelta(minutes=5))
    blob_store.put("avatars/u/me.png", created_at=OLD)

    report = sweep_orphaned_blobs(session, blob_store, GRACE, now=NOW)

    assert report.scanned == 3
    assert report.referenced == 1
    assert report.too_recent == 1
    assert report.deleted == ["advertisements/u/orphan.png"]
    assert "advertisements/u/in-flight.png" in blob_store.blobs
    assert "avatars/u/me.png" in blob_store.blobs
    assert len(blob_store.blobs) == 3


def test_sweep_keeps_blobs_referenced_by_archives(session, blob_store, owner, service):
    url = blob_store.put("advertisements/u/archived.png", created_at=OLD)
    session.add(
        AdvertisementArchive(
            original_advertisement_id=7,
            title="Old listing",
            start_date=date(2024, 1, 1),
            service_id=service.id,
            service_provider_id=provider_of(session, owner).id,
            images_urls=[{"url": url, "order": 1}],
            created_at=OLD,
        )
    )
    session.commit()

    report = sweep_orphaned_blobs(session, blob_store, GRACE, now=NOW)

    assert report.referenced == 1
    assert report.deleted == []


def test_dry_run_deletes_nothing(session, blob_store):
    blob_store.put("advertisements/u/orphan.png", created_at=OLD)

    report = sweep_orphaned_blobs(session, blob_store, GRACE, now=NOW, dry_run=True)

    assert report.deleted == ["advertisements/u/orphan.png"]
    assert blob_store.deletes == []
    assert "advertisements/u/orphan.png" in blob_store.blobs


def test_delete_failures_are_reported(session, blob_store):
    blob_store.put("advertisements/u/stuck.png", created_at=OLD)
    blob_store.put("advertisements/u/orphan.png", created_at=OLD)
    blob_store.fail_delete.add("advertisements/u/stuck.png")

    report = sweep_orphaned_blobs(session, blob_store, GRACE, now=NOW)

    assert report.failed == ["advertisements/u/stuck.png"]
    assert report.deleted == ["advertisements/u/orphan.png"]
