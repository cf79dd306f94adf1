"""
Audit Log Database Model.

Tracks every state change on trips and parcel requests.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, JSON
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - TRIP_CREATED / TRIP_UPDATED / TRIP_STATUS_CHANGED / TRIP_CAPACITY_CHANGED
    - REQUEST_CREATED / REQUEST_ACCEPTED / REQUEST_REJECTED / REQUEST_CANCELLED
    - PICKUP_VERIFIED / DELIVERY_VERIFIED / OTP_VERIFY_FAILED / OTP_REGENERATED
    - REQUEST_DETAILS_UPDATED / RECEIVER_DETAILS_UPDATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(String(64), index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility); never holds OTP values
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, entity={self.entity_type}:{self.entity_id})>"
