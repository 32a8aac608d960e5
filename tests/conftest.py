"""
tests/conftest.py

Fixtures shared by unit and API tests:
  - in-memory SQLite engine / session (StaticPool, shared across threads)
  - in-memory blob store recording every call
  - seeded users, providers, services, species
  - TestClient with get_session / get_blob_store overridden
  - real Supabase-style JWTs minted with the test secret
"""
import os

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ["DATABASE_URL"] = "sqlite://"

import uuid
from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from app.core.config import get_settings
from app.core.storage_utils import get_blob_store
from app.database import get_session
from app.main import app
from app.models.advertisement import Advertisement, AdvertisementImage, AdvertisementSpecies
from app.models.catalog import Service, Species
from app.models.user import City, ServiceProvider, User

BUCKET = "assets"


class FakeBlobStore:
    """
    Dict-backed stand-in for SupabaseBlobStore.

    delete() of a missing path raises, so callers must check exists() first.
    """

    def __init__(self, bucket: str = BUCKET):
        self.bucket = bucket
        self.blobs: dict[str, tuple[bytes, str, datetime]] = {}
        self.calls: list[tuple[str, str]] = []
        # 1-based index of the upload that raises
        self.fail_upload_on: int | None = None
        self.fail_delete: set[str] = set()

    def url_for(self, path: str) -> str:
        return f"https://test.supabase.co/storage/v1/object/sign/{self.bucket}/{path}?token=signed"

    def put(self, path: str, data: bytes = b"img", created_at: datetime | None = None) -> str:
        self.blobs[path] = (data, "image/png", created_at or datetime.now(timezone.utc))
        return self.url_for(path)

    def upload(self, path: str, file_bytes: bytes, content_type: str) -> None:
        self.calls.append(("upload", path))
        if self.fail_upload_on is not None and len(self.uploads) == self.fail_upload_on:
            raise RuntimeError("storage unavailable")
        self.blobs[path] = (file_bytes, content_type, datetime.now(timezone.utc))

    def mint_read_url(self, path: str, expires_in: int | None = None) -> str:
        self.calls.append(("mint", path))
        return self.url_for(path)

    def exists(self, path: str) -> bool:
        self.calls.append(("exists", path))
        return path in self.blobs

    def delete(self, path: str) -> None:
        self.calls.append(("delete", path))
        if path in self.fail_delete:
            raise RuntimeError("delete refused")
        if path not in self.blobs:
            raise KeyError(path)
        del self.blobs[path]

    def list_paths(self, prefix: str) -> list[tuple[str, datetime | None]]:
        return [
            (path, created_at)
            for path, (_, _, created_at) in self.blobs.items()
            if path.startswith(prefix.rstrip("/") + "/")
        ]

    @property
    def uploads(self) -> list[str]:
        return [path for op, path in self.calls if op == "upload"]

    @property
    def deletes(self) -> list[str]:
        return [path for op, path in self.calls if op == "delete"]


# --- Core fixtures ---


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def client(session: Session, blob_store: FakeBlobStore) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Seed data ---


@pytest.fixture
def city(session: Session) -> City:
    city = City(name="Warszawa", image_url="https://example.com/city.jpg")
    session.add(city)
    session.commit()
    session.refresh(city)
    return city


def _make_user(session: Session, city: City, email: str, active: bool | None) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        first_name="Jane",
        last_name="Doe",
        phone_number="123456789",
        city_id=city.id,
    )
    session.add(user)
    session.commit()
    if active is not None:
        session.add(ServiceProvider(user_id=user.id, is_active=active))
        session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def owner(session: Session, city: City) -> User:
    return _make_user(session, city, "owner@example.com", active=True)


@pytest.fixture
def stranger(session: Session, city: City) -> User:
    return _make_user(session, city, "stranger@example.com", active=True)


@pytest.fixture
def client_user(session: Session, city: City) -> User:
    """Plain user without any provider account."""
    return _make_user(session, city, "client@example.com", active=None)


def provider_of(session: Session, user: User) -> ServiceProvider:
    return session.exec(
        select(ServiceProvider).where(ServiceProvider.user_id == user.id)
    ).one()


@pytest.fixture
def service(session: Session) -> Service:
    service = Service(name="Dog walking")
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def species(session: Session) -> list[Species]:
    rows = [Species(name="Dog"), Species(name="Cat"), Species(name="Rabbit")]
    session.add_all(rows)
    session.commit()
    for row in rows:
        session.refresh(row)
    return rows


@pytest.fixture
def make_advertisement(session: Session, blob_store: FakeBlobStore, service: Service):
    """
    Factory: advertisement of `user`'s provider with `n_images` stored photos.
    """

    def _make(
        user: User,
        n_images: int = 2,
        title: str = "Dog walking in the park",
        species_ids: list[int] | None = None,
    ) -> Advertisement:
        provider = provider_of(session, user)
        ad = Advertisement(
            title=title,
            description="Long walks",
            price=25.0,
            status="ACTIVE",
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
            service_id=service.id,
            service_provider_id=provider.id,
        )
        session.add(ad)
        session.commit()
        session.refresh(ad)

        for order in range(1, n_images + 1):
            path = f"advertisements/{user.id}/seed_{ad.id}_{order}.png"
            url = blob_store.put(path)
            session.add(AdvertisementImage(advertisement_id=ad.id, image_url=url, order=order))
        for sid in species_ids or []:
            session.add(AdvertisementSpecies(advertisement_id=ad.id, species_id=sid))
        session.commit()
        session.refresh(ad)
        return ad

    return _make


# --- Auth helpers ---


def make_token(subject: str, secret: str | None = None, expires_in: timedelta = timedelta(hours=1)) -> str:
    settings = get_settings()
    payload = {
        "sub": subject,
        "email": "someone@example.com",
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret or settings.SUPABASE_JWT_SECRET, algorithm="HS256")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(str(user.id))}"}
