"""
One-time code generation and validation.

Codes are six decimal digits drawn from ``secrets``; expiry is wall-clock
based and evaluated lazily whenever a code is checked.
"""

import enum
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

OTP_LENGTH = 6
OTP_SPACE = 10 ** OTP_LENGTH


class OtpCheck(str, enum.Enum):
    """Outcome of checking a submitted code."""
    OK = "ok"
    INVALID = "invalid"
    EXPIRED = "expired"


def generate_otp(ttl: timedelta, now: datetime) -> Tuple[str, datetime]:
    """
    Generate a zero-padded six digit code and its expiry.

    Args:
        ttl: How long the code stays valid
        now: Current UTC time

    Returns:
        (code, expires_at)
    """
    code = f"{secrets.randbelow(OTP_SPACE):0{OTP_LENGTH}d}"
    return code, now + ttl


def validate_otp(
    submitted: Optional[str],
    stored: Optional[str],
    expires_at: Optional[datetime],
    now: datetime
) -> OtpCheck:
    """
    Check ``submitted`` against the stored code.

    Expiry wins over a mismatch so the caller can offer regeneration; a code
    is still valid at exactly ``expires_at``.
    """
    if stored is None or expires_at is None:
        return OtpCheck.INVALID

    if now > expires_at:
        return OtpCheck.EXPIRED

    if submitted is None or not hmac.compare_digest(submitted.encode(), stored.encode()):
        return OtpCheck.INVALID

    return OtpCheck.OK


def is_blocked(blocked_until: Optional[datetime], now: datetime) -> bool:
    return blocked_until is not None and now < blocked_until


def register_failure(
    failed_attempts: int,
    max_attempts: int,
    lockout: timedelta,
    now: datetime
) -> Tuple[int, Optional[datetime]]:
    """
    Count one invalid attempt.

    Returns:
        (new_failed_attempts, blocked_until). Reaching ``max_attempts`` starts
        a lockout and resets the counter for the next round.
    """
    attempts = (failed_attempts or 0) + 1
    if attempts >= max_attempts:
        return 0, now + lockout
    return attempts, None
