"""
Trip Service: publishing, editing, searching and status changes.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from backend.app.core.config import Settings
from backend.app.core.exceptions import (
    ValidationError, UnauthorizedError, StateConflictError, TooLateToEditError, NotFoundError
)
from backend.app.models.notification import Notification
from backend.app.models.request_enums import RequestStatus
from backend.app.models.trip_enums import TripStatus
from backend.app.schemas.parcel_request import ParcelRequestResponse
from backend.app.schemas.trip import TripUpdate, TripResponse
from backend.app.services.audit import get_audit_trail, AuditAction, ENTITY_TRIP
from backend.app.services.request_lifecycle import RequestLifecycleService
from backend.app.services.trip_service import TripService
from backend.tests.helpers import (
    TRAVELLER_ID, SENDER_ID, STRANGER_ID, publish_trip, submit_request, utc_now
)


@pytest.fixture
def unlocked(db_session, clock, trip_service):
    """Services for trips that stay open after the first acceptance."""
    settings = trip_service.settings.model_copy(update={"lock_trip_on_first_accept": False})
    return (
        TripService(db_session, settings=settings, clock=clock),
        RequestLifecycleService(db_session, settings=settings, clock=clock),
    )


async def test_create_trip_starts_open_and_full(trip_service, db_session):
    trip = await publish_trip(trip_service, allowed_categories=["books", "documents", "books"])

    assert trip.id is not None
    assert trip.status == TripStatus.OPEN
    assert trip.available_slots == trip.total_slots == 3
    assert trip.allowed_categories == ["books", "documents"]

    trail = await get_audit_trail(db_session, entity_type=ENTITY_TRIP, entity_id=trip.id)
    assert [entry.action for entry in trail] == [AuditAction.TRIP_CREATED]


@pytest.mark.parametrize("overrides, field", [
    ({"source": " M "}, "source"),
    ({"destination": "P"}, "destination"),
    ({"total_slots": 0}, "total_slots"),
    ({"total_slots": 6}, "total_slots"),
    ({"allowed_categories": []}, "allowed_categories"),
    ({"pnr_number": "AB"}, "pnr_number"),
    ({"pnr_number": "PNR-1234"}, "pnr_number"),
    ({"ticket_file_url": "ftp://files/ticket.pdf"}, "ticket_file_url"),
])
async def test_create_trip_rejects_bad_input(trip_service, overrides, field):
    with pytest.raises(ValidationError) as exc_info:
        await publish_trip(trip_service, **overrides)

    assert exc_info.value.details["field"] == field


async def test_arrival_must_follow_departure(trip_service):
    departure = utc_now() + timedelta(days=2)

    with pytest.raises(ValidationError):
        await publish_trip(
            trip_service,
            departure=departure,
            arrival_date=departure.date(),
            arrival_time=departure.time()
        )


async def test_departure_in_the_past_is_rejected(trip_service):
    with pytest.raises(ValidationError):
        await publish_trip(trip_service, departure=utc_now() - timedelta(hours=1))


async def test_departure_within_grace_period_is_accepted(trip_service):
    trip = await publish_trip(trip_service, departure=utc_now() - timedelta(minutes=2))
    assert trip.status == TripStatus.OPEN


async def test_blank_notes_become_null(trip_service):
    trip = await publish_trip(trip_service, notes="   ")
    assert trip.notes is None


async def test_search_excludes_own_full_and_closed_trips(trip_service, lifecycle):
    visible = await publish_trip(trip_service, traveller_id="traveller-2")
    await publish_trip(trip_service)  # viewer's own trip
    cancelled = await publish_trip(trip_service, traveller_id="traveller-3")
    await trip_service.update_status(cancelled.id, "traveller-3", TripStatus.CANCELLED)
    full = await publish_trip(trip_service, traveller_id="traveller-4", total_slots=1)
    full_request = await submit_request(lifecycle, full.id)
    await lifecycle.accept_request(full_request.id, "traveller-4")

    results = await trip_service.search_trips(viewer_id=TRAVELLER_ID)

    assert [t.id for t in results] == [visible.id]


async def test_search_filters_and_orders_by_departure(trip_service):
    later = await publish_trip(trip_service, departure=utc_now() + timedelta(days=5))
    sooner = await publish_trip(trip_service, departure=utc_now() + timedelta(days=1))
    await publish_trip(trip_service, destination="Goa")

    results = await trip_service.search_trips(viewer_id=SENDER_ID, source="Mumbai", destination="Pune")

    assert [t.id for t in results] == [sooner.id, later.id]


async def test_update_trip_by_non_owner(trip_service, trip):
    with pytest.raises(UnauthorizedError):
        await trip_service.update_trip(trip.id, STRANGER_ID, TripUpdate(notes="hello"))


async def test_update_trip_fields(trip_service, trip):
    updated = await trip_service.update_trip(
        trip.id, TRAVELLER_ID, TripUpdate(destination="Nashik", notes="Window seat")
    )

    assert updated.destination == "Nashik"
    assert updated.notes == "Window seat"


async def test_update_trip_capacity_goes_through_ledger(unlocked, db_session):
    trip_service, lifecycle = unlocked
    trip = await publish_trip(trip_service)
    request = await submit_request(lifecycle, trip.id)
    await lifecycle.accept_request(request.id, TRAVELLER_ID)

    updated = await trip_service.update_trip(trip.id, TRAVELLER_ID, TripUpdate(total_slots=5))
    assert (updated.total_slots, updated.available_slots) == (5, 4)

    with pytest.raises(ValidationError):
        await trip_service.update_trip(trip.id, TRAVELLER_ID, TripUpdate(total_slots=0))

    trail = await get_audit_trail(db_session, action=AuditAction.TRIP_CAPACITY_CHANGED)
    assert len(trail) == 1


async def test_update_trip_capacity_below_held_slots(unlocked, db_session):
    trip_service, lifecycle = unlocked
    trip = await publish_trip(trip_service, total_slots=2)
    for sender in ("sender-a", "sender-b"):
        request = await submit_request(lifecycle, trip.id, sender_id=sender)
        await lifecycle.accept_request(request.id, TRAVELLER_ID)

    with pytest.raises(ValidationError) as exc_info:
        await trip_service.update_trip(trip.id, TRAVELLER_ID, TripUpdate(total_slots=1))
    assert "2 slot(s) already held" in exc_info.value.message

    await db_session.refresh(trip)
    assert (trip.total_slots, trip.available_slots) == (2, 0)


async def test_trip_not_editable_after_first_accept(trip_service, lifecycle, trip, pending_request):
    await lifecycle.accept_request(pending_request.id, TRAVELLER_ID)

    with pytest.raises(TooLateToEditError):
        await trip_service.update_trip(trip.id, TRAVELLER_ID, TripUpdate(notes="late edit"))


async def test_trip_not_editable_after_departure(trip_service, trip, clock):
    clock.now = trip.departure_at + timedelta(minutes=1)

    assert not trip_service.can_edit_trip(trip)
    with pytest.raises(TooLateToEditError):
        await trip_service.update_trip(trip.id, TRAVELLER_ID, TripUpdate(notes="too late"))


@pytest.mark.parametrize("target", [TripStatus.COMPLETED, TripStatus.CANCELLED])
async def test_update_status_from_open(trip_service, trip, target):
    updated = await trip_service.update_status(trip.id, TRAVELLER_ID, target)
    assert updated.status == target


async def test_update_status_only_to_terminal(trip_service, trip):
    with pytest.raises(ValidationError):
        await trip_service.update_status(trip.id, TRAVELLER_ID, TripStatus.IN_PROGRESS)


async def test_update_status_from_terminal_conflicts(trip_service, trip):
    await trip_service.update_status(trip.id, TRAVELLER_ID, TripStatus.COMPLETED)

    with pytest.raises(StateConflictError):
        await trip_service.update_status(trip.id, TRAVELLER_ID, TripStatus.CANCELLED)


async def test_delete_is_soft_and_keeps_requests(trip_service, db_session, trip, pending_request):
    deleted = await trip_service.delete_trip(trip.id, TRAVELLER_ID)

    assert deleted.status == TripStatus.CANCELLED
    assert (await trip_service.get_trip(trip.id)).id == trip.id

    await db_session.refresh(pending_request)
    assert pending_request.status == RequestStatus.PENDING

    result = await db_session.execute(select(Notification).where(Notification.user_id == SENDER_ID))
    assert [n.title for n in result.scalars().all()] == ["Trip cancelled"]


async def test_get_unknown_trip(trip_service):
    with pytest.raises(NotFoundError):
        await trip_service.get_trip(12345)


async def test_list_trip_requests_is_owner_only(trip_service, trip, pending_request):
    requests = await trip_service.list_trip_requests(trip.id, TRAVELLER_ID)
    assert [r.id for r in requests] == [pending_request.id]

    with pytest.raises(UnauthorizedError):
        await trip_service.list_trip_requests(trip.id, SENDER_ID)


async def test_response_models_read_orm_rows(trip, pending_request):
    trip_view = TripResponse.model_validate(trip)
    request_view = ParcelRequestResponse.model_validate(pending_request)

    assert (trip_view.id, trip_view.status) == (trip.id, TripStatus.OPEN)
    assert request_view.trip_id == trip.id
    assert Settings.model_config["env_file"] == ".env"
