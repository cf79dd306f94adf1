"""
Request Lifecycle Service.

Orchestrates parcel requests from creation through pickup to delivery.
Each public operation is one transaction: the request row is locked, guards
from the state machine run, the trip's capacity is adjusted through the
ledger, and audit plus notification rows are written alongside.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.exceptions import (
    NotFoundError, UnauthorizedError, ValidationError, NoSlotsAvailableError, TripNotOpenError,
    InvalidOtpError, ExpiredOtpError, TooManyAttemptsError
)
from backend.app.core.rate_limit import RateLimiter
from backend.app.db.session import atomic
from backend.app.domain import validation
from backend.app.domain.lifecycle import state_machine
from backend.app.domain.lifecycle.otp import (
    OtpCheck, generate_otp, validate_otp, is_blocked, register_failure
)
from backend.app.models.parcel_request import ParcelRequest
from backend.app.models.request_enums import RequestStatus, PartyRole, OtpPurpose
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus, PackageCategory, RESERVABLE_TRIP_STATUSES
from backend.app.schemas.parcel_request import ParcelRequestCreate, ParcelRequestUpdate
from backend.app.services import capacity_ledger
from backend.app.services.audit import log_event, AuditAction, ENTITY_REQUEST
from backend.app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 500
CONTACT_NAME_MIN_LENGTH = 2
CONTACT_NAME_MAX_LENGTH = 100
NOTES_MAX_LENGTH = 500

DELIVERY_STATUSES = (RequestStatus.ACCEPTED, RequestStatus.PICKED_UP, RequestStatus.DELIVERED)

# (code, expiry, failed attempts, blocked until) column names per challenge
CHALLENGE_FIELDS = {
    OtpPurpose.PICKUP: ("pickup_otp", "pickup_otp_expiry", "failed_pickup_attempts", "pickup_blocked_until"),
    OtpPurpose.DELIVERY: ("delivery_otp", "delivery_otp_expiry", "failed_delivery_attempts", "delivery_blocked_until"),
}


class RequestLifecycleService:
    """
    Public operations on parcel requests.

    Args:
        db: Database session; each command commits or rolls back as a unit
        settings: OTP lifetimes, attempt limits and the cancellation window
        clock: Returns the current naive UTC time
        rate_limiter: Throttles OTP regeneration; None disables throttling
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings = default_settings,
        clock: Optional[Callable[[], datetime]] = None,
        rate_limiter: Optional[RateLimiter] = None
    ):
        self.db = db
        self.settings = settings
        self.clock = clock or datetime.utcnow
        self.rate_limiter = rate_limiter

    @property
    def pickup_otp_ttl(self) -> timedelta:
        return timedelta(hours=self.settings.pickup_otp_ttl_hours)

    @property
    def delivery_otp_ttl(self) -> timedelta:
        return timedelta(hours=self.settings.delivery_otp_ttl_hours)

    # Loading and authorization

    async def _get_trip(self, trip_id: int) -> Trip:
        result = await self.db.execute(select(Trip).where(Trip.id == trip_id))
        trip = result.scalar_one_or_none()
        if not trip:
            raise NotFoundError("Trip", trip_id)
        return trip

    async def _get_request(self, request_id: int, for_update: bool = False) -> ParcelRequest:
        query = select(ParcelRequest).where(ParcelRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Request", request_id)
        return request

    async def _load_for_update(self, request_id: int) -> Tuple[ParcelRequest, Trip]:
        request = await self._get_request(request_id, for_update=True)
        trip = await self._get_trip(request.trip_id)
        return request, trip

    @staticmethod
    def role_of(request: ParcelRequest, trip: Trip, actor_id: str) -> Optional[PartyRole]:
        if request.sender_id == actor_id:
            return PartyRole.SENDER
        if trip.traveller_id == actor_id:
            return PartyRole.TRAVELLER
        return None

    @staticmethod
    def _ensure_traveller(trip: Trip, actor_id: str) -> None:
        if trip.traveller_id != actor_id:
            raise UnauthorizedError("Only the trip's traveller can perform this action")

    @staticmethod
    def _ensure_sender(request: ParcelRequest, actor_id: str) -> None:
        if request.sender_id != actor_id:
            raise UnauthorizedError("Only the sender of this request can perform this action")

    def _ensure_party(self, request: ParcelRequest, trip: Trip, actor_id: str) -> PartyRole:
        role = self.role_of(request, trip, actor_id)
        if role is None:
            raise UnauthorizedError("You are not a party to this request")
        return role

    # Validation

    def _validate_description(self, value: Optional[str]) -> str:
        return validation.require_text(
            value, "item_description", DESCRIPTION_MIN_LENGTH, DESCRIPTION_MAX_LENGTH
        )

    def _validate_category(self, value, trip: Trip) -> PackageCategory:
        category = validation.coerce_enum(PackageCategory, value, "category")
        if category.value not in (trip.allowed_categories or []):
            raise ValidationError(
                f"This trip does not accept {category.value} parcels",
                field="category"
            )
        return category

    def _validate_photos(self, photos) -> List[str]:
        return validation.require_photos(photos, self.settings.required_parcel_photos)

    def _validate_receiver(self, name: Optional[str], phone: Optional[str]) -> Tuple[str, str]:
        name = validation.require_text(
            name, "delivery_contact_name", CONTACT_NAME_MIN_LENGTH, CONTACT_NAME_MAX_LENGTH
        )
        return name, validation.require_phone(phone)

    # Queries

    async def get_request(self, request_id: int, actor_id: str) -> ParcelRequest:
        """One request, visible to its sender and to the trip's traveller."""
        request = await self._get_request(request_id)
        trip = await self._get_trip(request.trip_id)
        self._ensure_party(request, trip, actor_id)
        return request

    async def list_sender_requests(self, sender_id: str) -> List[ParcelRequest]:
        result = await self.db.execute(
            select(ParcelRequest)
            .where(ParcelRequest.sender_id == sender_id)
            .order_by(desc(ParcelRequest.created_at), desc(ParcelRequest.id))
        )
        return result.scalars().all()

    async def list_incoming_requests(
        self,
        traveller_id: str,
        status: Optional[RequestStatus] = None
    ) -> List[ParcelRequest]:
        """Requests on any trip the caller travels."""
        query = (
            select(ParcelRequest)
            .join(Trip, Trip.id == ParcelRequest.trip_id)
            .where(Trip.traveller_id == traveller_id)
        )
        if status:
            query = query.where(ParcelRequest.status == status)
        query = query.order_by(desc(ParcelRequest.created_at), desc(ParcelRequest.id))

        result = await self.db.execute(query)
        return result.scalars().all()

    async def list_deliveries(self, traveller_id: str) -> List[ParcelRequest]:
        """The traveller's accepted, in-transit and delivered parcels."""
        result = await self.db.execute(
            select(ParcelRequest)
            .join(Trip, Trip.id == ParcelRequest.trip_id)
            .where(
                Trip.traveller_id == traveller_id,
                ParcelRequest.status.in_(DELIVERY_STATUSES)
            )
            .order_by(desc(ParcelRequest.updated_at), desc(ParcelRequest.id))
        )
        return result.scalars().all()

    # Commands

    async def create_request(self, sender_id: str, data: ParcelRequestCreate) -> ParcelRequest:
        """
        Create a PENDING request on an open trip.

        Raises:
            NotFoundError: unknown trip
            ValidationError: own trip, category not allowed, wrong photo count, bad receiver details
            TripNotOpenError: trip is not open or has departed
            NoSlotsAvailableError: trip is full
        """
        now = self.clock()

        async with atomic(self.db):
            trip = await self._get_trip(data.trip_id)

            if trip.traveller_id == sender_id:
                raise ValidationError("You cannot send a parcel on your own trip", field="trip_id")
            if trip.status != TripStatus.OPEN or trip.departure_at <= now:
                raise TripNotOpenError(trip_id=trip.id, current_status=trip.status.value)
            if trip.available_slots <= 0:
                raise NoSlotsAvailableError(trip_id=trip.id)

            description = self._validate_description(data.item_description)
            category = self._validate_category(data.category, trip)
            photos = self._validate_photos(data.parcel_photos)
            name, phone = self._validate_receiver(data.delivery_contact_name, data.delivery_contact_phone)

            request = ParcelRequest(
                trip_id=trip.id,
                sender_id=sender_id,
                item_description=description,
                category=category,
                parcel_photos=photos,
                delivery_contact_name=name,
                delivery_contact_phone=phone,
                sender_notes=validation.optional_text(data.sender_notes, "sender_notes", NOTES_MAX_LENGTH),
                status=RequestStatus.PENDING,
                created_at=now,
                updated_at=now
            )
            self.db.add(request)
            await self.db.flush()

            await log_event(
                self.db,
                action=AuditAction.REQUEST_CREATED,
                actor_id=sender_id,
                entity_type=ENTITY_REQUEST,
                entity_id=request.id,
                metadata={"trip_id": trip.id, "category": category.value}
            )
            await NotificationService.notify_request_update(
                self.db,
                user_id=trip.traveller_id,
                request_id=request.id,
                status=request.status.value,
                title="New parcel request",
                message=f"You have a new {category.value} parcel request for {trip.source} → {trip.destination}."
            )

        logger.info("Request %s created on trip %s", request.id, trip.id)
        return request

    async def accept_request(
        self,
        request_id: int,
        traveller_id: str,
        traveller_notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Accept a PENDING request, reserving one slot and issuing the pickup OTP.

        Returns:
            {request_id, status, pickup_otp, pickup_otp_expiry}

        Raises:
            TripNotOpenError: trip departed, cancelled or completed
            NoSlotsAvailableError: trip is full
        """
        now = self.clock()
        notes = validation.optional_text(traveller_notes, "traveller_notes", NOTES_MAX_LENGTH)

        async with atomic(self.db):
            request, trip = await self._load_for_update(request_id)
            self._ensure_traveller(trip, traveller_id)
            state_machine.ensure_transition(request.status, RequestStatus.ACCEPTED)
            if trip.departure_at <= now:
                raise TripNotOpenError(trip_id=trip.id, current_status=trip.status.value)

            outcome = await capacity_ledger.reserve_slot(
                self.db, trip.id, now=now, lock_trip=self.settings.lock_trip_on_first_accept
            )
            if outcome == capacity_ledger.SlotReservation.NO_SLOTS_AVAILABLE:
                raise NoSlotsAvailableError(trip_id=trip.id)
            if outcome == capacity_ledger.SlotReservation.TRIP_NOT_FOUND:
                raise NotFoundError("Trip", trip.id)
            if outcome != capacity_ledger.SlotReservation.OK:
                raise TripNotOpenError(trip_id=trip.id, current_status=trip.status.value)

            code, expires_at = generate_otp(self.pickup_otp_ttl, now)
            state_machine.apply_accept(request, code, expires_at, now, traveller_notes=notes)
            await self.db.flush()
            await self.db.refresh(trip)

            await log_event(
                self.db,
                action=AuditAction.REQUEST_ACCEPTED,
                actor_id=traveller_id,
                entity_type=ENTITY_REQUEST,
                entity_id=request.id,
                metadata={"trip_id": trip.id, "available_slots": trip.available_slots}
            )
            await NotificationService.notify_request_update(
                self.db,
                user_id=request.sender_id,
                request_id=request.id,
                status=request.status.value,
                title="Request accepted",
                message=f"Your parcel request for {trip.source} → {trip.destination} was accepted."
            )

        logger.info("Request %s accepted, trip %s has %s slots left", request.id, trip.id, trip.available_slots)
        return {
            "request_id": request.id,
            "status": request.status,
            "pickup_otp": code,
            "pickup_otp_expiry": expires_at,
        }

    async def reject_request(
        self,
        request_id: int,
        traveller_id: str,
        reason: Optional[str] = None
    ) -> ParcelRequest:
        """Reject a PENDING request. No slot was ever reserved for it."""
        now = self.clock()
        reason = validation.optional_text(reason, "reason", NOTES_MAX_LENGTH)

        async with atomic(self.db):
            request, trip = await self._load_for_update(request_id)
            self._ensure_traveller(trip, traveller_id)
            state_machine.apply_reject(request, reason, now)
            await self.db.flush()

            await log_event(
                self.db,
                action=AuditAction.REQUEST_REJECTED,
                actor_id=traveller_id,
                entity_type=ENTITY_REQUEST,
                entity_id=request.id,
                metadata={"trip_id": trip.id, "reason": reason}
            )
            await NotificationService.notify_request_update(
                self.db,
                user_id=request.sender_id,
                request_id=request.id,
                status=request.status.value,
                title="Request declined",
                message=reason or "The traveller could not take your parcel."
            )

        return request

    async def cancel_request(
        self,
        request_id: int,
        actor_id: str,
        actor_role: Optional[PartyRole] = None,
        reason: Optional[str] = None
    ) -> ParcelRequest:
        """
        Cancel a PENDING or ACCEPTED request.

        ``actor_role`` must match the caller's relation to the request; when
        omitted it is inferred. Cancelling an ACCEPTED request releases its
        slot and is refused inside the cancellation window.

        Raises:
            CancellationWindowClosedError: departure is within the window
        """
        now = self.clock()
        reason = validation.optional_text(reason, "reason", NOTES_MAX_LENGTH)

        async with atomic(self.db):
            request, trip = await self._load_for_update(request_id)
            role = self._ensure_party(request, trip, actor_id)
            if actor_role is not None and PartyRole(actor_role) != role:
                raise UnauthorizedError(f"You are not the {PartyRole(actor_role).value} of this request")

            state_machine.check_cancel(
                request, role, trip.departure_at, now, self.settings.cancellation_window_hours
            )
            previous_status = request.status
            held_slot = state_machine.apply_cancel(request, role, reason, now)
            await self.db.flush()

            if held_slot:
                await capacity_ledger.release_slot(self.db, trip.id, now=now)
                await self.db.refresh(trip)

            await log_event(
                self.db,
                action=AuditAction.REQUEST_CANCELLED,
                actor_id=actor_id,
                entity_type=ENTITY_REQUEST,
                entity_id=request.id,
                metadata={
                    "trip_id": trip.id,
                    "cancelled_by": role.value,
                    "previous_status": previous_status.value,
                    "slot_released": held_slot,
                    "reason": reason
                }
            )
            counterpart = trip.traveller_id if role == PartyRole.SENDER else request.sender_id
            await NotificationService.notify_request_update(
                self.db,
                user_id=counterpart,
                request_id=request.id,
                status=request.status.value,
                title="Request cancelled",
                message=f"The parcel request for {trip.source} → {trip.destination} was cancelled by the {role.value}."
            )

        logger.info("Request %s cancelled by %s (slot released: %s)", request.id, role.value, held_slot)
        return request

    async def verify_pickup_otp(self, request_id: int, traveller_id: str, code: str) -> Dict[str, Any]:
        """
        Confirm pickup with the code the sender handed over.

        Returns:
            {request_id, status, delivery_otp, delivery_otp_expiry}
        """
        return await self._verify_otp(request_id, traveller_id, code, OtpPurpose.PICKUP)

    async def verify_delivery_otp(self, request_id: int, traveller_id: str, code: str) -> Dict[str, Any]:
        """
        Confirm delivery with the code the receiver handed over.

        Returns:
            {request_id, status, delivered_at}
        """
        return await self._verify_otp(request_id, traveller_id, code, OtpPurpose.DELIVERY)

    async def _verify_otp(
        self,
        request_id: int,
        traveller_id: str,
        code: str,
        purpose: OtpPurpose
    ) -> Dict[str, Any]:
        """
        Shared verify flow.

        Expired codes and active lockouts fail without writing anything. An
        invalid code commits the failed-attempt bookkeeping and then raises.
        Pickup needs a live trip; a parcel already picked up can still be
        delivered after the trip is closed.
        """
        code_field, expiry_field, attempts_field, blocked_field = CHALLENGE_FIELDS[purpose]
        now = self.clock()
        failure = None
        result: Dict[str, Any] = {}

        async with atomic(self.db):
            request, trip = await self._load_for_update(request_id)
            self._ensure_traveller(trip, traveller_id)
            state_machine.ensure_otp_state(request, purpose, f"verify the {purpose.value} OTP")
            if purpose == OtpPurpose.PICKUP and trip.status not in RESERVABLE_TRIP_STATUSES:
                raise TripNotOpenError(trip_id=trip.id, current_status=trip.status.value)

            blocked_until = getattr(request, blocked_field)
            if is_blocked(blocked_until, now):
                raise TooManyAttemptsError(blocked_until)

            expires_at = getattr(request, expiry_field)
            check = validate_otp(code, getattr(request, code_field), expires_at, now)

            if check == OtpCheck.EXPIRED:
                raise ExpiredOtpError(expires_at)

            if check == OtpCheck.INVALID:
                attempts, blocked_until = register_failure(
                    getattr(request, attempts_field),
                    self.settings.otp_max_attempts,
                    timedelta(minutes=self.settings.otp_lockout_minutes),
                    now
                )
                setattr(request, attempts_field, attempts)
                setattr(request, blocked_field, blocked_until)
                request.updated_at = now
                await self.db.flush()

                remaining = 0 if blocked_until else self.settings.otp_max_attempts - attempts
                await log_event(
                    self.db,
                    action=AuditAction.OTP_VERIFY_FAILED,
                    actor_id=traveller_id,
                    entity_type=ENTITY_REQUEST,
                    entity_id=request.id,
                    metadata={
                        "purpose": purpose.value,
                        "attempts_remaining": remaining,
                        "blocked_until": blocked_until.isoformat() if blocked_until else None
                    }
                )
                logger.warning("Invalid %s OTP for request %s (%s attempts left)", purpose.value, request.id, remaining)
                failure = InvalidOtpError(attempts_remaining=remaining)

            elif purpose == OtpPurpose.PICKUP:
                delivery_code, delivery_expiry = generate_otp(self.delivery_otp_ttl, now)
                state_machine.apply_pickup(request, delivery_code, delivery_expiry, now)
                await self.db.flush()

                await log_event(
                    self.db,
                    action=AuditAction.PICKUP_VERIFIED,
                    actor_id=traveller_id,
                    entity_type=ENTITY_REQUEST,
                    entity_id=request.id,
                    metadata={"trip_id": trip.id}
                )
                await NotificationService.notify_request_update(
                    self.db,
                    user_id=request.sender_id,
                    request_id=request.id,
                    status=request.status.value,
                    title="Parcel picked up",
                    message="The traveller has collected your parcel."
                )
                result = {
                    "request_id": request.id,
                    "status": request.status,
                    "delivery_otp": delivery_code,
                    "delivery_otp_expiry": delivery_expiry,
                }

            else:
                state_machine.apply_delivery(request, now)
                await self.db.flush()

                await log_event(
                    self.db,
                    action=AuditAction.DELIVERY_VERIFIED,
                    actor_id=traveller_id,
                    entity_type=ENTITY_REQUEST,
                    entity_id=request.id,
                    metadata={"trip_id": trip.id}
                )
                await NotificationService.notify_request_update(
                    self.db,
                    user_id=request.sender_id,
                    request_id=request.id,
                    status=request.status.value,
                    title="Parcel delivered",
                    message="Your parcel has been delivered."
                )
                result = {
                    "request_id": request.id,
                    "status": request.status,
                    "delivered_at": request.delivered_at,
                }

        if failure is not None:
            raise failure

        logger.info("Request %s %s verified", request_id, purpose.value)
        return result

    async def regenerate_pickup_otp(self, request_id: int, actor_id: str) -> Dict[str, Any]:
        return await self._regenerate_otp(request_id, actor_id, OtpPurpose.PICKUP)

    async def regenerate_delivery_otp(self, request_id: int, actor_id: str) -> Dict[str, Any]:
        return await self._regenerate_otp(request_id, actor_id, OtpPurpose.DELIVERY)

    async def _regenerate_otp(self, request_id: int, actor_id: str, purpose: OtpPurpose) -> Dict[str, Any]:
        """
        Issue a fresh code for the challenge owned by the current status.

        Resets the failed-attempt counter but leaves an active lockout in
        place. Status does not change.
        """
        now = self.clock()
        ttl = self.pickup_otp_ttl if purpose == OtpPurpose.PICKUP else self.delivery_otp_ttl

        async with atomic(self.db):
            request, trip = await self._load_for_update(request_id)
            role = self._ensure_party(request, trip, actor_id)
            state_machine.ensure_otp_state(request, purpose, f"regenerate the {purpose.value} OTP")

            if self.rate_limiter is not None:
                await self.rate_limiter.hit(f"otp:{purpose.value}:{request.id}")

            code, expires_at = generate_otp(ttl, now)
            state_machine.apply_new_otp(request, purpose, code, expires_at, now)
            await self.db.flush()

            await log_event(
                self.db,
                action=AuditAction.OTP_REGENERATED,
                actor_id=actor_id,
                entity_type=ENTITY_REQUEST,
                entity_id=request.id,
                metadata={
                    "purpose": purpose.value,
                    "requested_by": role.value,
                    "expires_at": expires_at.isoformat()
                }
            )

        return {
            "request_id": request.id,
            "purpose": purpose.value,
            "otp": code,
            "expires_at": expires_at,
            "is_expired": False,
        }

    async def get_pickup_otp(self, request_id: int, sender_id: str) -> Dict[str, Any]:
        return await self._get_otp(request_id, sender_id, OtpPurpose.PICKUP)

    async def get_delivery_otp(self, request_id: int, sender_id: str) -> Dict[str, Any]:
        return await self._get_otp(request_id, sender_id, OtpPurpose.DELIVERY)

    async def _get_otp(self, request_id: int, sender_id: str, purpose: OtpPurpose) -> Dict[str, Any]:
        """The sender reads the current code to pass on."""
        code_field, expiry_field, _, _ = CHALLENGE_FIELDS[purpose]

        request = await self._get_request(request_id)
        self._ensure_sender(request, sender_id)
        state_machine.ensure_otp_state(request, purpose, f"view the {purpose.value} OTP")

        expires_at = getattr(request, expiry_field)
        return {
            "request_id": request.id,
            "purpose": purpose.value,
            "otp": getattr(request, code_field),
            "expires_at": expires_at,
            "is_expired": self.clock() > expires_at,
        }

    async def update_receiver_details(
        self,
        request_id: int,
        sender_id: str,
        name: str,
        phone: str
    ) -> ParcelRequest:
        """Allowed in every status except DELIVERED."""
        now = self.clock()

        async with atomic(self.db):
            request, trip = await self._load_for_update(request_id)
            self._ensure_sender(request, sender_id)
            state_machine.ensure_receiver_details_editable(request.status)

            request.delivery_contact_name, request.delivery_contact_phone = self._validate_receiver(name, phone)
            request.updated_at = now
            await self.db.flush()

            await log_event(
                self.db,
                action=AuditAction.RECEIVER_DETAILS_UPDATED,
                actor_id=sender_id,
                entity_type=ENTITY_REQUEST,
                entity_id=request.id,
                metadata={"status": request.status.value}
            )
            if request.status in DELIVERY_STATUSES:
                await NotificationService.notify_request_update(
                    self.db,
                    user_id=trip.traveller_id,
                    request_id=request.id,
                    status=request.status.value,
                    title="Receiver details changed",
                    message="The sender updated the receiver's contact details."
                )

        return request

    async def update_request_details(
        self,
        request_id: int,
        sender_id: str,
        changes: ParcelRequestUpdate
    ) -> ParcelRequest:
        """Parcel details may change while PENDING or ACCEPTED."""
        fields = changes.model_dump(exclude_unset=True)
        now = self.clock()

        async with atomic(self.db):
            request, trip = await self._load_for_update(request_id)
            self._ensure_sender(request, sender_id)
            state_machine.ensure_request_details_editable(request.status)

            if fields.get("item_description") is not None:
                request.item_description = self._validate_description(fields["item_description"])
            if fields.get("category") is not None:
                request.category = self._validate_category(fields["category"], trip)
            if fields.get("parcel_photos") is not None:
                request.parcel_photos = self._validate_photos(fields["parcel_photos"])

            request.updated_at = now
            await self.db.flush()

            await log_event(
                self.db,
                action=AuditAction.REQUEST_DETAILS_UPDATED,
                actor_id=sender_id,
                entity_type=ENTITY_REQUEST,
                entity_id=request.id,
                metadata={"fields": sorted(fields), "status": request.status.value}
            )

        return request
