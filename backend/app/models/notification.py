"""
Notification Database Model.

In-app outbox; pushing to devices is handled outside this service.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, Enum
from backend.app.db.session import Base
from backend.app.models.trip_enums import enum_values
import enum


class NotificationType(str, enum.Enum):
    INFO = "info"
    REQUEST_UPDATE = "request_update"
    TRIP_UPDATE = "trip_update"


class Notification(Base):
    """
    In-App Notification.
    Stores messages for users.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    user_id = Column(String(64), nullable=False, index=True)

    # Content
    type = Column(Enum(NotificationType, values_callable=enum_values), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, title='{self.title}')>"
