"""
Parcel request schemas.

Request and response models for the request lifecycle. Response models carry
OTP expiries but never the codes themselves; codes are only returned by the
operations that issue them and by the sender's OTP lookup.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List

from backend.app.models.request_enums import RequestStatus, PartyRole
from backend.app.models.trip_enums import PackageCategory


class ParcelRequestCreate(BaseModel):
    """Schema for asking to ship a parcel on a trip."""
    trip_id: int
    item_description: str = Field(..., max_length=500)
    category: PackageCategory
    parcel_photos: List[str] = Field(..., description="Uploaded photo URLs")
    delivery_contact_name: str = Field(..., max_length=100)
    delivery_contact_phone: str = Field(..., max_length=20)
    sender_notes: Optional[str] = Field(None, max_length=500)


class ParcelRequestUpdate(BaseModel):
    """Parcel detail edits. Omitted fields are left unchanged."""
    item_description: Optional[str] = Field(None, max_length=500)
    category: Optional[PackageCategory] = None
    parcel_photos: Optional[List[str]] = None


class ReceiverDetailsUpdate(BaseModel):
    delivery_contact_name: str = Field(..., max_length=100)
    delivery_contact_phone: str = Field(..., max_length=20)


class AcceptRequestBody(BaseModel):
    traveller_notes: Optional[str] = Field(None, max_length=500)


class RejectRequestBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CancelRequestBody(BaseModel):
    """``actor_role`` is inferred from the caller when omitted."""
    actor_role: Optional[PartyRole] = None
    reason: Optional[str] = Field(None, max_length=500)


class OtpSubmission(BaseModel):
    # No digit pattern here; a malformed code counts as an invalid attempt
    code: str = Field(..., max_length=32)


class ParcelRequestResponse(BaseModel):
    """Schema for parcel request response."""
    id: int
    trip_id: int
    sender_id: str
    item_description: str
    category: PackageCategory
    parcel_photos: List[str]
    delivery_contact_name: str
    delivery_contact_phone: str
    sender_notes: Optional[str]
    traveller_notes: Optional[str]
    status: RequestStatus
    rejection_reason: Optional[str]
    cancelled_by: Optional[PartyRole]
    pickup_otp_expiry: Optional[datetime]
    delivery_otp_expiry: Optional[datetime]
    accepted_at: Optional[datetime]
    rejected_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    picked_at: Optional[datetime]
    delivered_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ParcelRequestListResponse(BaseModel):
    requests: List[ParcelRequestResponse]
    total: int


class AcceptRequestResponse(BaseModel):
    request_id: int
    status: RequestStatus
    pickup_otp: str
    pickup_otp_expiry: datetime


class PickupVerifiedResponse(BaseModel):
    request_id: int
    status: RequestStatus
    delivery_otp: str
    delivery_otp_expiry: datetime


class DeliveryVerifiedResponse(BaseModel):
    request_id: int
    status: RequestStatus
    delivered_at: datetime


class OtpResponse(BaseModel):
    """A one-time code as issued or looked up."""
    request_id: int
    purpose: str
    otp: str
    expires_at: datetime
    is_expired: bool = False
