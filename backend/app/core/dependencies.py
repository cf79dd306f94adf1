"""
FastAPI dependencies: caller identity and service factories.

The identity provider is an external collaborator: it hands the client a
signed token whose ``sub`` claim is the opaque user id. Authorization against
trip and request ownership happens in the services, not here.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.jwt import decode_access_token
from backend.app.core.rate_limit import RateLimiter
from backend.app.core.redis_client import get_redis
from backend.app.db.session import get_db
from backend.app.services.request_lifecycle import RequestLifecycleService
from backend.app.services.trip_service import TripService

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency resolving the caller from a bearer token.

    Returns:
        Decoded token payload with ``user_id`` set to the ``sub`` claim

    Raises:
        HTTPException: 401 if the token is missing, invalid or has no subject
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {**payload, "user_id": str(payload["sub"])}


async def get_trip_service(db: AsyncSession = Depends(get_db)) -> TripService:
    return TripService(db)


async def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
) -> RequestLifecycleService:
    """Lifecycle service with OTP regeneration throttled through Redis."""
    rate_limiter = RateLimiter(
        redis,
        limit=settings.otp_regenerate_limit,
        window_seconds=settings.otp_regenerate_window_seconds,
    )
    return RequestLifecycleService(db, rate_limiter=rate_limiter)
