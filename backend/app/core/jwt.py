"""
Bearer token handling for caller identity.

Tokens are issued by the external identity provider and signed with the
shared ``secret_key``. The ``sub`` claim is the opaque user id; this service
keeps no user table of its own.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a token the way the identity provider does.

    Only local tooling and the test suite mint tokens.

    Example payload:
        {"sub": "5f1c0c1e-0d3c-4a5e-9d43-1c2f4b7e9a10", "exp": 1234567890}
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "exp": datetime.utcnow() + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature and expiry.

    Returns:
        Token claims, or None if the token is malformed, expired or has no subject
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    subject = claims.get("sub")
    if subject is None or str(subject).strip() == "":
        return None
    return claims
