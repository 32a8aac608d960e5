# app/core/storage_utils.py
"""
Supabase Storage access for listing photos.

Responsibilities:
  - upload raw bytes / mint signed read URLs / existence checks / deletes
  - recover the object path from any read URL ever handed out
    (extract_path), since that URL is the only durable handle
    stored in the database.
"""

import logging
import os
import re
import time
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any
from urllib.parse import unquote, urlsplit

from app.core.config import get_settings
from app.core.supabase_client import supabase_admin

logger = logging.getLogger(__name__)

settings = get_settings()

# Objects are listed in pages of this size when walking a folder.
LIST_PAGE_SIZE = 1000

_SUPABASE_MARKER = re.compile(r"/storage/v1/object/(?:sign|public|authenticated)/")
_BUCKET_QUALIFIED = re.compile(r"/b/([^/]+)/o/(.+)$")


def extract_path(url: str | None, bucket: str | None = None) -> str | None:
    """
    Given a read URL, extract the object path relative to its bucket.

    Supported shapes:
        https://<proj>.supabase.co/storage/v1/object/sign/assets/ads/u/1.png?token=...
            -> 'ads/u/1.png'
        https://<storage-host>/<bucket>/ads/u/1.png?X-Goog-Signature=...
            -> 'ads/u/1.png'
        https://<host>/v0/b/<bucket>/o/ads%2Fu%2F1.png?alt=media&token=...
            -> 'ads/u/1.png'

    If `bucket` is given, URLs naming another bucket do not match.
    The signed host form carries no marker of its own, so it is only
    recognized when `bucket` is given.

    Returns:
        The decoded path, or None if the URL has none of these shapes.
    """
    if not url:
        return None

    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None

    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None

    raw_path = parts.path

    # 1) Supabase: /storage/v1/object/<sign|public>/<bucket>/<path>
    match = _SUPABASE_MARKER.search(raw_path)
    if match:
        rest = raw_path[match.end():]
        url_bucket, _, obj = rest.partition("/")
        return _checked(url_bucket, obj, bucket)

    # 2) Bucket-qualified: .../b/<bucket>/o/<percent-encoded path>
    match = _BUCKET_QUALIFIED.search(raw_path)
    if match:
        return _checked(match.group(1), match.group(2), bucket)

    # 3) Signed host form: /<bucket>/<path>
    if bucket is None:
        return None
    url_bucket, _, obj = raw_path.lstrip("/").partition("/")
    return _checked(url_bucket, obj, bucket)


def _checked(url_bucket: str | None, obj: str, bucket: str | None) -> str | None:
    if bucket is not None and url_bucket is not None and unquote(url_bucket) != bucket:
        return None
    path = unquote(obj).strip("/")
    return path or None


def safe_filename(filename: str | None) -> str:
    """
    Strip directories and anything outside [A-Za-z0-9_.-] from a client filename.
    """
    name = os.path.basename(filename or "").replace(" ", "_")
    name = "".join(c for c in name if c.isalnum() or c in ("_", "-", "."))
    return name or "image"


def build_object_path(kind: str, owner: str, filename: str | None) -> str:
    """
    Build a collision-free object path for a new upload.

    Path pattern:
        <kind>/<owner>/<epoch-ms>_<random>_<filename>
    """
    stamp = int(time.time() * 1000)
    return f"{kind}/{owner}/{stamp}_{uuid.uuid4().hex[:8]}_{safe_filename(filename)}"


class SupabaseBlobStore:
    """
    Path-based access to one Supabase Storage bucket.

    Any exception raised by the Supabase client propagates; callers
    decide whether a failure is fatal (uploads) or best-effort (deletes).
    """

    def __init__(self, client: Any, bucket: str):
        self.client = client
        self.bucket = bucket

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    def upload(self, path: str, file_bytes: bytes, content_type: str) -> None:
        """
        Upload raw bytes. Paths are unique per upload, so no upsert.
        """
        self._bucket().upload(
            path,
            file_bytes,
            {"content-type": content_type, "upsert": "false"},
        )

    def mint_read_url(self, path: str, expires_in: int | None = None) -> str:
        """
        Create a signed read URL for `path`.

        The URL embeds the path (see extract_path).
        """
        expires = expires_in or settings.SIGNED_URL_EXPIRES_IN
        result = self._bucket().create_signed_url(path, expires)
        url = result.get("signedURL") or result.get("signedUrl")
        if not url:
            raise RuntimeError(f"Storage did not return a signed URL for '{path}'")
        return url

    def exists(self, path: str) -> bool:
        folder, _, name = path.rpartition("/")
        entries = self._bucket().list(folder, {"search": name, "limit": 100})
        return any(entry.get("name") == name for entry in entries or [])

    def delete(self, path: str) -> None:
        # Supabase Python client expects a list of paths.
        self._bucket().remove([path])

    def list_paths(self, prefix: str) -> list[tuple[str, datetime | None]]:
        """
        Recursively list objects under `prefix`.

        Returns:
            (path, created_at) tuples; created_at is None when unknown.
        """
        found: list[tuple[str, datetime | None]] = []
        pending = [prefix.strip("/")]

        while pending:
            folder = pending.pop()
            offset = 0
            while True:
                entries = self._bucket().list(
                    folder,
                    {"limit": LIST_PAGE_SIZE, "offset": offset},
                ) or []
                for entry in entries:
                    name = entry.get("name")
                    if not name:
                        continue
                    full = f"{folder}/{name}" if folder else name
                    # Folders come back without an id
                    if entry.get("id") is None:
                        pending.append(full)
                    else:
                        found.append((full, _parse_timestamp(entry.get("created_at"))))
                if len(entries) < LIST_PAGE_SIZE:
                    break
                offset += LIST_PAGE_SIZE

        return found


def _parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable storage timestamp '%s'", raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@lru_cache
def get_blob_store() -> SupabaseBlobStore:
    """
    FastAPI dependency returning the blob store for listing photos.

    Built lazily so importing the app does not require Storage credentials.
    """
    return SupabaseBlobStore(supabase_admin(), settings.STORAGE_BUCKET)
