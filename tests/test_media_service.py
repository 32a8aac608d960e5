import pytest
from fastapi import HTTPException

from app.services.media_service import MediaService, NewImage

from conftest import FakeBlobStore

media = MediaService()


def png(name: str = "new.png", data: bytes = b"\x89PNG...") -> NewImage:
    return NewImage(filename=name, content_type="image/png", data=data)


@pytest.fixture
def store() -> FakeBlobStore:
    return FakeBlobStore()


def test_kept_urls_come_first_then_uploads_in_order(store):
    a = store.put("advertisements/u/a.png")
    b = store.put("advertisements/u/b.png")
    d = store.put("advertisements/u/d.png")

    plan = media.synchronize(
        store,
        owner="u",
        persisted_urls=[a, b, d],
        keep_urls=[b, a],
        new_files=[png("c.png"), png("e.png")],
    )

    assert plan.final_urls[:2] == [b, a]
    assert len(plan.final_urls) == 4
    assert plan.final_urls[2].endswith("_c.png?token=signed")
    assert plan.final_urls[3].endswith("_e.png?token=signed")
    assert [order for _, order in plan.ordered()] == [1, 2, 3, 4]
    assert plan.orphan_urls == [d]
    assert len(plan.uploaded_paths) == 2
    assert all(p.startswith("advertisements/u/") for p in plan.uploaded_paths)
    # orphans are not touched until after the commit
    assert store.deletes == []
    assert "advertisements/u/d.png" in store.blobs


def test_requires_at_least_one_image(store):
    a = store.put("advertisements/u/a.png")

    with pytest.raises(HTTPException) as exc:
        media.synchronize(store, "u", persisted_urls=[a], keep_urls=[], new_files=[])

    assert exc.value.status_code == 400
    assert exc.value.detail == "At least one image is required"
    assert store.calls == []


def test_duplicate_kept_urls_are_collapsed(store):
    a = store.put("advertisements/u/a.png")

    plan = media.synchronize(store, "u", persisted_urls=[a], keep_urls=[a, a], new_files=[])

    assert plan.ordered() == [(a, 1)]
    assert plan.orphan_urls == []


def test_rejects_kept_url_not_attached_to_advertisement(store):
    a = store.put("advertisements/u/a.png")

    with pytest.raises(HTTPException) as exc:
        media.synchronize(
            store,
            "u",
            persisted_urls=[a],
            keep_urls=["https://elsewhere.example.com/x.png"],
            new_files=[png()],
        )

    assert exc.value.status_code == 400
    assert store.uploads == []


@pytest.mark.parametrize(
    "image, status_code",
    [
        (NewImage("x.gif", "image/gif", b"GIF89a"), 400),
        (NewImage("x.png", "image/png", b""), 400),
        (NewImage("x.png", "image/png", b"0" * (5 * 1024 * 1024 + 1)), 413),
    ],
)
def test_rejects_bad_files_before_any_upload(store, image, status_code):
    with pytest.raises(HTTPException) as exc:
        media.synchronize(store, "u", persisted_urls=[], keep_urls=[], new_files=[png(), image])

    assert exc.value.status_code == status_code
    assert store.uploads == []


def test_upload_failure_aborts_and_discards_earlier_uploads(store):
    store.fail_upload_on = 2

    with pytest.raises(HTTPException) as exc:
        media.synchronize(
            store,
            "u",
            persisted_urls=[],
            keep_urls=[],
            new_files=[png("1.png"), png("2.png"), png("3.png")],
        )

    assert exc.value.status_code == 500
    assert exc.value.detail == "Failed to upload image"
    # third file never attempted, first one cleaned up
    assert len(store.uploads) == 2
    assert store.blobs == {}


def test_delete_orphans_checks_existence_first(store):
    a = store.put("advertisements/u/a.png")
    gone = store.url_for("advertisements/u/gone.png")

    report = media.delete_orphans(store, [a, gone])

    assert report.deleted == ["advertisements/u/a.png"]
    assert report.missing == ["advertisements/u/gone.png"]
    assert store.calls == [
        ("exists", "advertisements/u/a.png"),
        ("delete", "advertisements/u/a.png"),
        ("exists", "advertisements/u/gone.png"),
    ]


def test_delete_orphans_is_best_effort(store):
    broken = store.put("advertisements/u/broken.png")
    ok = store.put("advertisements/u/ok.png")
    store.fail_delete.add("advertisements/u/broken.png")

    report = media.delete_orphans(
        store,
        ["https://images.example.com/legacy", broken, ok],
    )

    assert report.skipped == ["https://images.example.com/legacy"]
    assert report.failed == ["advertisements/u/broken.png"]
    assert report.deleted == ["advertisements/u/ok.png"]


def test_delete_orphans_twice_is_idempotent(store):
    a = store.put("advertisements/u/a.png")

    media.delete_orphans(store, [a])
    report = media.delete_orphans(store, [a])

    assert report.deleted == []
    assert report.missing == ["advertisements/u/a.png"]


def test_recoverable_urls_drops_missing_blobs_only(store):
    present = store.put("advertisements/u/a.png")
    missing = store.url_for("advertisements/u/gone.png")
    external = "https://images.example.com/photo-1?w=500"

    assert media.recoverable_urls(store, [missing, present, external]) == [present, external]
