"""
Trip API Endpoints.

Travellers publish and manage trips; senders browse bookable ones.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from backend.app.core.dependencies import get_current_user, get_trip_service
from backend.app.models.request_enums import RequestStatus
from backend.app.models.trip_enums import TripStatus, TransportMode
from backend.app.schemas.parcel_request import ParcelRequestResponse
from backend.app.schemas.trip import (
    TripCreate, TripUpdate, TripStatusUpdate, TripResponse, TripListResponse
)
from backend.app.services.trip_service import TripService

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    """
    Publish a trip. Available slots start equal to total slots.
    """
    trip = await service.create_trip(current_user["user_id"], trip_data)
    return TripResponse.model_validate(trip)


@router.get("/search", response_model=TripListResponse)
async def search_trips(
    source: Optional[str] = Query(None),
    destination: Optional[str] = Query(None),
    departure_date: Optional[date] = Query(None),
    transport_mode: Optional[TransportMode] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    """
    Browse open trips with free slots, excluding the caller's own.
    """
    trips = await service.search_trips(
        viewer_id=current_user["user_id"],
        source=source,
        destination=destination,
        departure_date=departure_date,
        transport_mode=transport_mode,
        limit=limit
    )
    return TripListResponse(
        trips=[TripResponse.model_validate(t) for t in trips],
        total=len(trips)
    )


@router.get("/mine", response_model=TripListResponse)
async def list_my_trips(
    status_filter: Optional[TripStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    trips = await service.list_my_trips(current_user["user_id"], status=status_filter)
    return TripListResponse(
        trips=[TripResponse.model_validate(t) for t in trips],
        total=len(trips)
    )


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    trip = await service.get_trip(trip_id)
    return TripResponse.model_validate(trip)


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip(
    changes: TripUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    """
    Edit an open trip before departure.

    Lowering total slots below the number of accepted requests is refused.
    """
    trip = await service.update_trip(trip_id, current_user["user_id"], changes)
    return TripResponse.model_validate(trip)


@router.patch("/{trip_id}/status", response_model=TripResponse)
async def update_trip_status(
    body: TripStatusUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    """
    Complete or cancel a trip (from open or in progress only).
    """
    trip = await service.update_status(trip_id, current_user["user_id"], body.status)
    return TripResponse.model_validate(trip)


@router.delete("/{trip_id}", response_model=TripResponse)
async def delete_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    """
    Soft delete: the trip is cancelled, the row and its requests are kept.
    """
    trip = await service.delete_trip(trip_id, current_user["user_id"])
    return TripResponse.model_validate(trip)


@router.get("/{trip_id}/requests", response_model=List[ParcelRequestResponse])
async def list_trip_requests(
    trip_id: int = Path(..., description="Trip ID"),
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    service: TripService = Depends(get_trip_service)
):
    requests = await service.list_trip_requests(trip_id, current_user["user_id"], status=status_filter)
    return [ParcelRequestResponse.model_validate(r) for r in requests]
