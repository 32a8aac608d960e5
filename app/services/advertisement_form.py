# app/services/advertisement_form.py
"""
Parsing of multipart advertisement forms into AdvertisementForm.

Every problem is a 400 with a human-readable reason, raised before
any storage or database work starts.
"""

import json
import math
from datetime import date, datetime, time

from fastapi import HTTPException, status
from pydantic import ValidationError

from app.models.advertisement import ADVERTISEMENT_STATUSES
from app.schemas.advertisement import AdvertisementForm


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def parse_price(raw: str | None) -> float | None:
    if _blank(raw):
        return None
    try:
        price = float(raw)
    except ValueError:
        raise _bad_request("Price must be a non-negative number")
    if not math.isfinite(price) or price < 0:
        raise _bad_request("Price must be a non-negative number")
    return price


def parse_date(raw: str | None, field: str) -> date | None:
    """
    Accept "YYYY-MM-DD" or a full ISO timestamp ("2025-01-01T00:00:00Z").
    """
    if _blank(raw):
        return None
    value = raw.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        raise _bad_request(f"Invalid {field}")


def parse_time(raw: str | None, field: str) -> time | None:
    """
    Accept "HH:MM", "HH:MM:SS" or a full ISO timestamp.
    """
    if _blank(raw):
        return None
    value = raw.strip()
    try:
        return time.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).time()
    except ValueError:
        raise _bad_request(f"Invalid {field}")


def parse_status(raw: str | None) -> str | None:
    if _blank(raw):
        return None
    value = raw.strip().upper()
    if value not in ADVERTISEMENT_STATUSES:
        raise _bad_request(
            f"Invalid status. Allowed: {', '.join(ADVERTISEMENT_STATUSES)}"
        )
    return value


def parse_species_ids(raw: str | None) -> list[int]:
    """
    Parse a JSON array of species ids; duplicates are collapsed.
    """
    if _blank(raw):
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise _bad_request("Invalid speciesIds format")
    if not isinstance(value, list):
        raise _bad_request("speciesIds must be an array")

    ids: list[int] = []
    for item in value:
        # bool is an int subclass
        if isinstance(item, bool) or not isinstance(item, int):
            raise _bad_request("Invalid speciesIds format")
        if item not in ids:
            ids.append(item)
    return ids


def parse_keep_image_urls(raw: str | None) -> list[str]:
    """
    Parse a JSON array of image URLs to keep; first occurrence wins.
    """
    if _blank(raw):
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise _bad_request("Invalid keepImageUrls format")
    if not isinstance(value, list) or not all(isinstance(u, str) for u in value):
        raise _bad_request("keepImageUrls must be an array of URLs")

    urls: list[str] = []
    for url in value:
        if url not in urls:
            urls.append(url)
    return urls


def parse_int(raw: str | None, field: str) -> int | None:
    if _blank(raw):
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise _bad_request(f"Invalid {field}")


def parse_advertisement_form(
    *,
    title: str | None,
    description: str | None,
    price: str | None,
    status_value: str | None,
    start_date: str | None,
    end_date: str | None,
    service_start_time: str | None,
    service_end_time: str | None,
    service_id: str | None,
    species_ids: str | None,
    keep_image_urls: str | None = None,
    version: str | None = None,
) -> AdvertisementForm:
    """
    Validate raw form values and build an AdvertisementForm.

    Required: title, startDate, serviceId.

    Raises:
        HTTPException(400): with the first problem found.
    """
    if _blank(title) or _blank(start_date) or _blank(service_id):
        raise _bad_request("Missing required fields: title, startDate, serviceId")

    parsed_price = parse_price(price)
    parsed_status = parse_status(status_value)
    parsed_start = parse_date(start_date, "startDate")
    parsed_end = parse_date(end_date, "endDate")
    if parsed_end is not None and parsed_end < parsed_start:
        raise _bad_request("End date must be on or after start date")

    start_time = parse_time(service_start_time, "serviceStartTime")
    end_time = parse_time(service_end_time, "serviceEndTime")

    try:
        return AdvertisementForm(
            title=title.strip(),
            description=None if _blank(description) else description.strip(),
            price=parsed_price,
            status=parsed_status,
            start_date=parsed_start,
            end_date=parsed_end,
            service_start_time=start_time,
            service_end_time=end_time,
            service_id=parse_int(service_id, "serviceId"),
            species_ids=parse_species_ids(species_ids),
            keep_image_urls=parse_keep_image_urls(keep_image_urls),
            version=parse_int(version, "version"),
        )
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise _bad_request(f"Invalid {field}: {first.get('msg')}")
