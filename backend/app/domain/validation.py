"""
Input rules shared by trip and parcel request operations.

Each helper either returns the normalized value or raises ValidationError
naming the offending field.
"""

import re
from typing import Iterable, List, Optional, Sequence, Type, TypeVar
from urllib.parse import urlparse

from backend.app.core.exceptions import ValidationError

PHONE_PATTERN = re.compile(r"^[0-9]{10}$")
PNR_PATTERN = re.compile(r"^[A-Za-z0-9]{3,20}$")

E = TypeVar("E")


def require_text(value: Optional[str], field: str, min_length: int, max_length: int) -> str:
    text = (value or "").strip()
    if len(text) < min_length or len(text) > max_length:
        raise ValidationError(
            f"{field} must be between {min_length} and {max_length} characters",
            field=field
        )
    return text


def optional_text(value: Optional[str], field: str, max_length: int) -> Optional[str]:
    """Blank becomes None."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return text


def require_http_url(value: Optional[str], field: str) -> str:
    url = (value or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) URL", field=field)
    return url


def require_phone(value: Optional[str], field: str = "delivery_contact_phone") -> str:
    phone = (value or "").strip()
    if not PHONE_PATTERN.match(phone):
        raise ValidationError("Phone number must be exactly 10 digits", field=field)
    return phone


def require_pnr(value: Optional[str]) -> str:
    pnr = (value or "").strip()
    if not PNR_PATTERN.match(pnr):
        raise ValidationError("PNR must be 3-20 letters or digits", field="pnr_number")
    return pnr


def coerce_enum(enum_cls: Type[E], value, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field)


def require_categories(values: Optional[Iterable], enum_cls: Type[E]) -> List[E]:
    """At least one category; duplicates collapse, order is kept."""
    categories: List[E] = []
    for value in values or ():
        category = coerce_enum(enum_cls, value, "allowed_categories")
        if category not in categories:
            categories.append(category)
    if not categories:
        raise ValidationError("At least one parcel category must be allowed", field="allowed_categories")
    return categories


def require_photos(photos: Optional[Sequence[str]], required: int) -> List[str]:
    photos = list(photos or [])
    if len(photos) != required:
        raise ValidationError(
            f"Exactly {required} parcel photos are required, got {len(photos)}",
            field="parcel_photos"
        )
    return [require_http_url(url, "parcel_photos") for url in photos]
