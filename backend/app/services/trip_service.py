"""
Trip Service.

Publishing, editing, browsing and owner-driven status changes for trips.
Slot counters are never assigned here; capacity changes go through the
capacity ledger.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.exceptions import (
    NotFoundError, UnauthorizedError, StateConflictError, TooLateToEditError, ValidationError
)
from backend.app.db.session import atomic
from backend.app.domain import validation
from backend.app.models.notification import NotificationType
from backend.app.models.parcel_request import ParcelRequest
from backend.app.models.request_enums import RequestStatus
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import (
    TripStatus, TransportMode, PackageCategory, RESERVABLE_TRIP_STATUSES, TERMINAL_TRIP_STATUSES
)
from backend.app.schemas.trip import TripCreate, TripUpdate
from backend.app.services import capacity_ledger
from backend.app.services.audit import log_event, AuditAction, ENTITY_TRIP
from backend.app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

TEXT_MIN_LENGTH = 2
TEXT_MAX_LENGTH = 100
NOTES_MAX_LENGTH = 500


class TripService:
    """
    Trip CRUD bound to one database session.

    Args:
        db: Database session
        settings: Application settings (slot limits, departure grace)
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings = default_settings,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.settings = settings
        self.clock = clock or datetime.utcnow

    # Validation

    def _validate_schedule(self, departure_at: datetime, arrival_at: datetime, now: datetime) -> None:
        if arrival_at <= departure_at:
            raise ValidationError("Arrival must be after departure", field="arrival_date")
        if departure_at < now - timedelta(minutes=self.settings.departure_grace_minutes):
            raise ValidationError("Departure cannot be in the past", field="departure_date")

    def _validate_slots(self, total_slots: int) -> int:
        if total_slots is None or total_slots < 1 or total_slots > self.settings.max_trip_slots:
            raise ValidationError(
                f"total_slots must be between 1 and {self.settings.max_trip_slots}",
                field="total_slots"
            )
        return total_slots

    # Queries

    async def get_trip(self, trip_id: int) -> Trip:
        result = await self.db.execute(select(Trip).where(Trip.id == trip_id))
        trip = result.scalar_one_or_none()
        if not trip:
            raise NotFoundError("Trip", trip_id)
        return trip

    async def get_owned_trip(self, trip_id: int, traveller_id: str) -> Trip:
        trip = await self.get_trip(trip_id)
        if trip.traveller_id != traveller_id:
            raise UnauthorizedError("Only the trip's traveller can manage this trip")
        return trip

    async def list_my_trips(self, traveller_id: str, status: Optional[TripStatus] = None) -> List[Trip]:
        query = select(Trip).where(Trip.traveller_id == traveller_id)
        if status:
            query = query.where(Trip.status == status)
        query = query.order_by(desc(Trip.created_at), desc(Trip.id))

        result = await self.db.execute(query)
        return result.scalars().all()

    async def search_trips(
        self,
        viewer_id: Optional[str] = None,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        departure_date=None,
        transport_mode: Optional[TransportMode] = None,
        limit: int = 50
    ) -> List[Trip]:
        """
        Bookable trips: open, with a free slot, departing today or later.

        The viewer's own trips are excluded.
        """
        today = self.clock().date()
        query = select(Trip).where(
            Trip.status == TripStatus.OPEN,
            Trip.available_slots > 0,
            Trip.departure_date >= today
        )

        if viewer_id:
            query = query.where(Trip.traveller_id != viewer_id)
        if source:
            query = query.where(Trip.source == source.strip())
        if destination:
            query = query.where(Trip.destination == destination.strip())
        if departure_date:
            query = query.where(Trip.departure_date == departure_date)
        if transport_mode:
            query = query.where(Trip.transport_mode == transport_mode)

        query = query.order_by(Trip.departure_date, Trip.departure_time, Trip.id).limit(limit)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def list_trip_requests(
        self,
        trip_id: int,
        traveller_id: str,
        status: Optional[RequestStatus] = None
    ) -> List[ParcelRequest]:
        """Requests on one trip, visible to its traveller only."""
        await self.get_owned_trip(trip_id, traveller_id)

        query = select(ParcelRequest).where(ParcelRequest.trip_id == trip_id)
        if status:
            query = query.where(ParcelRequest.status == status)
        query = query.order_by(desc(ParcelRequest.created_at), desc(ParcelRequest.id))

        result = await self.db.execute(query)
        return result.scalars().all()

    def can_edit_trip(self, trip: Trip, now: Optional[datetime] = None) -> bool:
        """A trip is editable while it is open and has not departed."""
        now = now or self.clock()
        return trip.status == TripStatus.OPEN and trip.departure_at > now

    # Commands

    async def create_trip(self, traveller_id: str, data: TripCreate) -> Trip:
        now = self.clock()

        source = validation.require_text(data.source, "source", TEXT_MIN_LENGTH, TEXT_MAX_LENGTH)
        destination = validation.require_text(data.destination, "destination", TEXT_MIN_LENGTH, TEXT_MAX_LENGTH)
        transport_mode = validation.coerce_enum(TransportMode, data.transport_mode, "transport_mode")
        departure_at = datetime.combine(data.departure_date, data.departure_time)
        arrival_at = datetime.combine(data.arrival_date, data.arrival_time)
        self._validate_schedule(departure_at, arrival_at, now)
        total_slots = self._validate_slots(data.total_slots)
        categories = validation.require_categories(data.allowed_categories, PackageCategory)

        trip = Trip(
            traveller_id=traveller_id,
            source=source,
            destination=destination,
            transport_mode=transport_mode,
            departure_date=data.departure_date,
            departure_time=data.departure_time,
            arrival_date=data.arrival_date,
            arrival_time=data.arrival_time,
            total_slots=total_slots,
            available_slots=total_slots,
            allowed_categories=[c.value for c in categories],
            pnr_number=validation.require_pnr(data.pnr_number),
            ticket_file_url=validation.require_http_url(data.ticket_file_url, "ticket_file_url"),
            notes=validation.optional_text(data.notes, "notes", NOTES_MAX_LENGTH),
            status=TripStatus.OPEN,
            created_at=now,
            updated_at=now
        )

        async with atomic(self.db):
            self.db.add(trip)
            await self.db.flush()

            await log_event(
                self.db,
                action=AuditAction.TRIP_CREATED,
                actor_id=traveller_id,
                entity_type=ENTITY_TRIP,
                entity_id=trip.id,
                metadata={
                    "source": trip.source,
                    "destination": trip.destination,
                    "total_slots": trip.total_slots
                }
            )

        logger.info("Trip %s created by %s", trip.id, traveller_id)
        return trip

    async def update_trip(self, trip_id: int, traveller_id: str, changes: TripUpdate) -> Trip:
        """
        Edit an open, not yet departed trip.

        A new ``total_slots`` is applied through the ledger and refused when
        it is smaller than the number of slots already held.
        """
        fields = changes.model_dump(exclude_unset=True)
        now = self.clock()

        async with atomic(self.db):
            trip = await self.get_owned_trip(trip_id, traveller_id)
            if not self.can_edit_trip(trip, now):
                raise TooLateToEditError(
                    "Trip can only be edited while open and before departure",
                    current_status=trip.status.value
                )

            if "source" in fields:
                trip.source = validation.require_text(fields["source"], "source", TEXT_MIN_LENGTH, TEXT_MAX_LENGTH)
            if "destination" in fields:
                trip.destination = validation.require_text(
                    fields["destination"], "destination", TEXT_MIN_LENGTH, TEXT_MAX_LENGTH
                )
            if "transport_mode" in fields:
                trip.transport_mode = validation.coerce_enum(TransportMode, fields["transport_mode"], "transport_mode")
            if "allowed_categories" in fields:
                categories = validation.require_categories(fields["allowed_categories"], PackageCategory)
                trip.allowed_categories = [c.value for c in categories]
            if "pnr_number" in fields:
                trip.pnr_number = validation.require_pnr(fields["pnr_number"])
            if "ticket_file_url" in fields:
                trip.ticket_file_url = validation.require_http_url(fields["ticket_file_url"], "ticket_file_url")
            if "notes" in fields:
                trip.notes = validation.optional_text(fields["notes"], "notes", NOTES_MAX_LENGTH)

            schedule_fields = ("departure_date", "departure_time", "arrival_date", "arrival_time")
            if any(name in fields for name in schedule_fields):
                for name in schedule_fields:
                    if fields.get(name) is not None:
                        setattr(trip, name, fields[name])
                self._validate_schedule(trip.departure_at, trip.arrival_at, now)

            trip.updated_at = now
            await self.db.flush()

            if fields.get("total_slots") is not None and fields["total_slots"] != trip.total_slots:
                new_total = self._validate_slots(fields["total_slots"])
                previous_total = trip.total_slots
                outcome = await capacity_ledger.resize_capacity(self.db, trip.id, new_total, now=now)
                if outcome != capacity_ledger.CapacityChange.OK:
                    held = await capacity_ledger.count_held_slots(self.db, trip.id)
                    raise ValidationError(
                        f"total_slots cannot be lower than the {held} slot(s) already held by accepted requests",
                        field="total_slots"
                    )
                await self.db.refresh(trip)

                await log_event(
                    self.db,
                    action=AuditAction.TRIP_CAPACITY_CHANGED,
                    actor_id=traveller_id,
                    entity_type=ENTITY_TRIP,
                    entity_id=trip.id,
                    metadata={
                        "old_total_slots": previous_total,
                        "new_total_slots": trip.total_slots,
                        "available_slots": trip.available_slots
                    }
                )

            await log_event(
                self.db,
                action=AuditAction.TRIP_UPDATED,
                actor_id=traveller_id,
                entity_type=ENTITY_TRIP,
                entity_id=trip.id,
                metadata={"fields": sorted(fields)}
            )

        return trip

    async def update_status(self, trip_id: int, traveller_id: str, new_status: TripStatus) -> Trip:
        """
        Move a trip to COMPLETED or CANCELLED.

        Only allowed from OPEN or IN_PROGRESS. Requests on the trip keep their
        own status; senders with live requests are notified of a cancellation.
        """
        new_status = validation.coerce_enum(TripStatus, new_status, "status")
        if new_status not in TERMINAL_TRIP_STATUSES:
            raise ValidationError(
                "Trip status can only be changed to completed or cancelled",
                field="status"
            )

        now = self.clock()

        async with atomic(self.db):
            trip = await self.get_owned_trip(trip_id, traveller_id)
            if trip.status not in RESERVABLE_TRIP_STATUSES:
                raise StateConflictError(
                    f"Cannot change a {trip.status.value} trip to {new_status.value}",
                    current_status=trip.status.value
                )

            old_status = trip.status
            trip.status = new_status
            trip.updated_at = now
            await self.db.flush()

            await log_event(
                self.db,
                action=AuditAction.TRIP_STATUS_CHANGED,
                actor_id=traveller_id,
                entity_type=ENTITY_TRIP,
                entity_id=trip.id,
                metadata={"old_status": old_status.value, "new_status": new_status.value}
            )

            if new_status == TripStatus.CANCELLED:
                result = await self.db.execute(
                    select(ParcelRequest.sender_id).where(
                        ParcelRequest.trip_id == trip.id,
                        ParcelRequest.status.in_((RequestStatus.PENDING, RequestStatus.ACCEPTED))
                    ).distinct()
                )
                for sender_id in result.scalars().all():
                    await NotificationService.create_notification(
                        self.db,
                        user_id=sender_id,
                        title="Trip cancelled",
                        message=f"The trip {trip.source} → {trip.destination} was cancelled by the traveller.",
                        type=NotificationType.TRIP_UPDATE,
                        metadata={"trip_id": trip.id}
                    )

        logger.info("Trip %s moved %s -> %s", trip.id, old_status.value, new_status.value)
        return trip

    async def delete_trip(self, trip_id: int, traveller_id: str) -> Trip:
        """Soft delete: the trip is cancelled and the row kept."""
        return await self.update_status(trip_id, traveller_id, TripStatus.CANCELLED)
