# app/core/auth.py
import logging
import uuid
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session, select

from app.core.config import get_settings
from app.database import get_session
from app.models.advertisement import Advertisement
from app.models.user import ServiceProvider, User

logger = logging.getLogger(__name__)

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so public endpoints can be used as a guest.
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def verify_token(token: str) -> uuid.UUID:
    """
    Map a bearer token to the stable subject id of its user.

    Raises:
        HTTPException(401): invalid token, or missing / non-UUID 'sub'.
    """
    payload = decode_access_token(token)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub",
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        return uuid.UUID(str(sub))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from a Supabase JWT.

    Flow:
      1. If no Authorization header => guest => return None.
      2. Verify JWT => subject id.
      3. Find user profile in public.users.

    Raises:
        HTTPException(401): if token is malformed or invalid.
        HTTPException(404): if the token is valid but no profile exists.
    """
    if credentials is None:
        return None  # guest mode

    subject_id = verify_token(credentials.credentials)

    user = session.exec(select(User).where(User.id == subject_id)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


# ----- Provider ownership -----


def _providers_of(session: Session, user: User) -> list[ServiceProvider]:
    stmt = select(ServiceProvider).where(ServiceProvider.user_id == user.id)
    return list(session.exec(stmt).all())


def authorize_provider(
    session: Session,
    user: User,
    provider_id: int,
    action: str = "modify this advertisement",
) -> ServiceProvider:
    """
    Check that `user` controls provider `provider_id` and that it is active.

    Pure check: no writes.

    Raises:
        HTTPException(403): not the owner, or the provider is inactive.
    """
    providers = _providers_of(session, user)
    owned = next((p for p in providers if p.id == provider_id), None)

    if owned is None:
        logger.info("User %s denied: does not own provider %s", user.id, provider_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You are not authorized to {action}",
        )

    if not owned.is_active:
        logger.info("User %s denied: provider %s is inactive", user.id, provider_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You must be an active service provider to {action}",
        )

    return owned


def authorize_advertisement(
    session: Session,
    user: User,
    advertisement_id: int,
) -> Advertisement:
    """
    Gate for every mutating advertisement operation.

    Outcomes:
      - 404 if the advertisement does not exist
      - 403 if the user does not own its provider, or the provider is inactive
      - otherwise the advertisement itself (its provider is authorized)
    """
    advertisement = session.get(Advertisement, advertisement_id)
    if advertisement is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Advertisement not found",
        )

    authorize_provider(session, user, advertisement.service_provider_id)
    return advertisement


def require_active_provider(session: Session, user: User) -> ServiceProvider:
    """
    Return the user's active provider account (one per user is assumed).

    Raises:
        HTTPException(403): if the user has no active provider account.
    """
    active = [p for p in _providers_of(session, user) if p.is_active]
    if not active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not an active service provider",
        )
    return active[0]


def require_advertisement_owner(
    advertisement_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
) -> Advertisement:
    """
    Route dependency wrapping `authorize_advertisement`.

    Resolved before the handler body runs, so unauthorized requests
    never reach upload or database code.
    """
    return authorize_advertisement(session, user, advertisement_id)
