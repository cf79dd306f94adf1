"""
Parcel request database model.

A sender's ask to ship one parcel on a specific trip. Rows are never
deleted; terminal statuses are retained for the audit trail.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, JSON
from backend.app.db.session import Base
from backend.app.models.request_enums import RequestStatus, PartyRole
from backend.app.models.trip_enums import PackageCategory, enum_values


class ParcelRequest(Base):
    """
    Parcel request model.

    Pickup OTP fields are populated only while ACCEPTED; delivery OTP fields
    only from PICKED_UP onward.
    """
    __tablename__ = "parcel_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    sender_id = Column(String(64), nullable=False, index=True)

    # Parcel
    item_description = Column(String(500), nullable=False)
    category = Column(Enum(PackageCategory, values_callable=enum_values), nullable=False)
    parcel_photos = Column(JSON, nullable=False, default=list)

    # Receiver
    delivery_contact_name = Column(String(100), nullable=False)
    delivery_contact_phone = Column(String(20), nullable=False)

    # Notes
    sender_notes = Column(Text, nullable=True)
    traveller_notes = Column(Text, nullable=True)

    # Status
    status = Column(Enum(RequestStatus, values_callable=enum_values), default=RequestStatus.PENDING, nullable=False, index=True)
    rejection_reason = Column(Text, nullable=True)
    cancelled_by = Column(Enum(PartyRole, values_callable=enum_values), nullable=True)

    # Pickup challenge
    pickup_otp = Column(String(6), nullable=True)
    pickup_otp_expiry = Column(DateTime, nullable=True)
    failed_pickup_attempts = Column(Integer, default=0, nullable=False)
    pickup_blocked_until = Column(DateTime, nullable=True)

    # Delivery challenge
    delivery_otp = Column(String(6), nullable=True)
    delivery_otp_expiry = Column(DateTime, nullable=True)
    failed_delivery_attempts = Column(Integer, default=0, nullable=False)
    delivery_blocked_until = Column(DateTime, nullable=True)

    # Timestamps
    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    picked_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ParcelRequest(id={self.id}, trip_id={self.trip_id}, status='{self.status.value}')>"
