from datetime import date, time

import pytest
from fastapi import HTTPException

from app.services.advertisement_form import parse_advertisement_form

BASE = dict(
    title="Dog walking",
    description="",
    price="25.5",
    status_value=None,
    start_date="2025-01-01",
    end_date="2025-01-31",
    service_start_time="08:30",
    service_end_time="",
    service_id="1",
    species_ids="[1, 2, 2]",
    keep_image_urls='["https://a", "https://b", "https://a"]',
    version=None,
)


def parse(**overrides):
    return parse_advertisement_form(**{**BASE, **overrides})


def assert_bad_request(detail: str, **overrides):
    with pytest.raises(HTTPException) as exc:
        parse(**overrides)
    assert exc.value.status_code == 400
    assert exc.value.detail == detail


def test_parses_valid_form():
    form = parse()

    assert form.title == "Dog walking"
    assert form.description is None
    assert form.price == 25.5
    assert form.status is None
    assert form.start_date == date(2025, 1, 1)
    assert form.end_date == date(2025, 1, 31)
    assert form.service_start_time == time(8, 30)
    assert form.service_end_time is None
    assert form.service_id == 1
    assert form.species_ids == [1, 2]
    assert form.keep_image_urls == ["https://a", "https://b"]
    assert form.version is None


def test_accepts_iso_timestamps_for_dates_and_times():
    form = parse(
        start_date="2025-09-26T00:00:00Z",
        end_date="",
        service_start_time="2025-09-26T10:15:00",
    )
    assert form.start_date == date(2025, 9, 26)
    assert form.service_start_time == time(10, 15)


@pytest.mark.parametrize("price", ["-5", "abc", "nan", "inf"])
def test_rejects_bad_price(price):
    assert_bad_request("Price must be a non-negative number", price=price)


def test_empty_price_means_no_price():
    assert parse(price="").price is None
    assert parse(price="0").price == 0


@pytest.mark.parametrize("field", ["title", "start_date", "service_id"])
def test_missing_required_field(field):
    assert_bad_request("Missing required fields: title, startDate, serviceId", **{field: "  "})


def test_status_must_be_allowed_value():
    assert parse(status_value="inactive").status == "INACTIVE"
    assert_bad_request("Invalid status. Allowed: ACTIVE, INACTIVE", status_value="PENDING")


def test_end_date_before_start_date():
    assert_bad_request(
        "End date must be on or after start date",
        start_date="2025-02-01",
        end_date="2025-01-31",
    )
    assert parse(start_date="2025-01-31", end_date="2025-01-31").end_date == date(2025, 1, 31)


@pytest.mark.parametrize(
    "raw, detail",
    [
        ("[1, 2", "Invalid speciesIds format"),
        ('{"id": 1}', "speciesIds must be an array"),
        ('["1"]', "Invalid speciesIds format"),
        ("[true]", "Invalid speciesIds format"),
    ],
)
def test_rejects_malformed_species_ids(raw, detail):
    assert_bad_request(detail, species_ids=raw)


def test_omitted_species_ids_clear_associations():
    assert parse(species_ids=None).species_ids == []


def test_rejects_malformed_keep_image_urls():
    assert_bad_request("Invalid keepImageUrls format", keep_image_urls="[")
    assert_bad_request("keepImageUrls must be an array of URLs", keep_image_urls="[1]")


def test_rejects_non_numeric_service_id_and_version():
    assert_bad_request("Invalid serviceId", service_id="dog")
    assert_bad_request("Invalid version", version="v2")
    assert parse(version="3").version == 3
