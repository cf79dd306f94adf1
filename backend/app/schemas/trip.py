"""
Trip schemas.

Schemas for trip publishing, editing and browsing.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime, date, time

from backend.app.models.trip_enums import TripStatus, TransportMode, PackageCategory


class TripCreate(BaseModel):
    """Schema for publishing a new trip."""
    source: str = Field(..., max_length=100, description="Departure city")
    destination: str = Field(..., max_length=100, description="Arrival city")
    transport_mode: TransportMode
    departure_date: date
    departure_time: time
    arrival_date: date
    arrival_time: time
    total_slots: int = Field(..., description="Parcels the traveller can carry")
    allowed_categories: List[PackageCategory] = Field(..., description="Accepted parcel categories")
    pnr_number: str = Field(..., max_length=20, description="Ticket PNR")
    ticket_file_url: str = Field(..., description="Uploaded ticket URL")
    notes: Optional[str] = Field(None, max_length=500)


class TripUpdate(BaseModel):
    """Schema for editing an open trip. Omitted fields are left unchanged."""
    source: Optional[str] = Field(None, max_length=100)
    destination: Optional[str] = Field(None, max_length=100)
    transport_mode: Optional[TransportMode] = None
    departure_date: Optional[date] = None
    departure_time: Optional[time] = None
    arrival_date: Optional[date] = None
    arrival_time: Optional[time] = None
    total_slots: Optional[int] = None
    allowed_categories: Optional[List[PackageCategory]] = None
    pnr_number: Optional[str] = Field(None, max_length=20)
    ticket_file_url: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class TripStatusUpdate(BaseModel):
    status: TripStatus


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    traveller_id: str
    source: str
    destination: str
    transport_mode: TransportMode
    departure_date: date
    departure_time: time
    arrival_date: date
    arrival_time: time
    total_slots: int
    available_slots: int
    allowed_categories: List[PackageCategory]
    pnr_number: str
    ticket_file_url: str
    notes: Optional[str]
    status: TripStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TripListResponse(BaseModel):
    """Schema for trip list."""
    trips: List[TripResponse]
    total: int
