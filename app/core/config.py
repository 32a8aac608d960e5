# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key)
      - DATABASE_URL (Supabase Postgres connection string)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Optional:
      - SUPABASE_SERVICE_ROLE_KEY (required by the Storage client for uploads)
      - STORAGE_BUCKET, SIGNED_URL_EXPIRES_IN, MAX_IMAGE_BYTES
      - ORPHAN_SWEEP_GRACE_MINUTES, LOG_LEVEL
    """

    PROJECT_NAME: str = "PetCare Marketplace API"
    API_V1_STR: str = "/api/v1"

    # Supabase / DB config
    SUPABASE_URL: str
    SUPABASE_KEY: str
    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Service role key bypasses RLS (backend only)
    SUPABASE_SERVICE_ROLE_KEY: str | None = None

    # Storage
    STORAGE_BUCKET: str = "assets"
    # Signed read URLs are the only durable handle to a photo, so they are
    # minted long-lived (10 years).
    SIGNED_URL_EXPIRES_IN: int = 10 * 365 * 24 * 60 * 60
    MAX_IMAGE_BYTES: int = 5 * 1024 * 1024

    # Blobs younger than this are never swept (uploads of in-flight requests)
    ORPHAN_SWEEP_GRACE_MINUTES: int = 60

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
