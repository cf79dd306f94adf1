"""
Trip database model.

Trips are published by travellers offering spare carrying capacity.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Date, Time, DateTime, Enum, JSON, CheckConstraint
from backend.app.db.session import Base
from backend.app.models.trip_enums import TripStatus, TransportMode, enum_values


class Trip(Base):
    """
    Trip model.

    ``available_slots`` is a stored counter consistent with the number of
    requests holding a slot. It is only changed through the capacity ledger.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - opaque user id from the identity provider
    traveller_id = Column(String(64), nullable=False, index=True)

    # Route
    source = Column(String(100), nullable=False, index=True)
    destination = Column(String(100), nullable=False, index=True)
    transport_mode = Column(Enum(TransportMode, values_callable=enum_values), nullable=False)

    # Schedule (UTC)
    departure_date = Column(Date, nullable=False, index=True)
    departure_time = Column(Time, nullable=False)
    arrival_date = Column(Date, nullable=False)
    arrival_time = Column(Time, nullable=False)

    # Capacity
    total_slots = Column(Integer, nullable=False)
    available_slots = Column(Integer, nullable=False)
    allowed_categories = Column(JSON, nullable=False, default=list)

    # Ticket
    pnr_number = Column(String(20), nullable=False)
    ticket_file_url = Column(String(1000), nullable=False)
    notes = Column(Text, nullable=True)

    # Status
    status = Column(Enum(TripStatus, values_callable=enum_values), default=TripStatus.OPEN, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("total_slots >= 1", name="ck_trips_total_slots_positive"),
        CheckConstraint(
            "available_slots >= 0 AND available_slots <= total_slots",
            name="ck_trips_available_slots_range"
        ),
    )

    @property
    def departure_at(self) -> datetime:
        return datetime.combine(self.departure_date, self.departure_time)

    @property
    def arrival_at(self) -> datetime:
        return datetime.combine(self.arrival_date, self.arrival_time)

    def __repr__(self):
        return f"<Trip(id={self.id}, {self.source}->{self.destination}, status='{self.status.value}')>"
