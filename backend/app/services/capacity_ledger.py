"""
Trip capacity ledger.

The only code allowed to change ``Trip.available_slots`` / ``Trip.total_slots``.
Every change is a single conditional UPDATE so concurrent callers can never
push the counter below zero or above the trip's total.
"""

import enum
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus, RESERVABLE_TRIP_STATUSES

logger = logging.getLogger(__name__)


class SlotReservation(str, enum.Enum):
    OK = "ok"
    NO_SLOTS_AVAILABLE = "no_slots_available"
    TRIP_NOT_OPEN = "trip_not_open"
    TRIP_NOT_FOUND = "trip_not_found"


class CapacityChange(str, enum.Enum):
    OK = "ok"
    BELOW_HELD_SLOTS = "below_held_slots"
    TRIP_NOT_FOUND = "trip_not_found"


async def reserve_slot(
    db: AsyncSession,
    trip_id: int,
    now: Optional[datetime] = None,
    lock_trip: bool = True
) -> SlotReservation:
    """
    Take one slot from a trip.

    The availability check and the decrement are one statement:
    ``available_slots = available_slots - 1 WHERE available_slots > 0``.
    When ``lock_trip`` is set, an OPEN trip moves to IN_PROGRESS in the same
    transaction.

    Args:
        db: Database session (transaction owned by the caller)
        trip_id: Trip to reserve on
        now: Timestamp for ``updated_at``
        lock_trip: Move an OPEN trip to IN_PROGRESS after reserving

    Returns:
        SlotReservation outcome
    """
    now = now or datetime.utcnow()

    result = await db.execute(
        update(Trip)
        .where(
            Trip.id == trip_id,
            Trip.status.in_(RESERVABLE_TRIP_STATUSES),
            Trip.available_slots > 0
        )
        .values(available_slots=Trip.available_slots - 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        if lock_trip:
            await db.execute(
                update(Trip)
                .where(Trip.id == trip_id, Trip.status == TripStatus.OPEN)
                .values(status=TripStatus.IN_PROGRESS)
                .execution_options(synchronize_session=False)
            )
        logger.info("Reserved slot on trip %s", trip_id)
        return SlotReservation.OK

    # Nothing matched: tell the caller why
    status_result = await db.execute(select(Trip.status).where(Trip.id == trip_id))
    trip_status = status_result.scalar_one_or_none()

    if trip_status is None:
        return SlotReservation.TRIP_NOT_FOUND
    if trip_status not in RESERVABLE_TRIP_STATUSES:
        return SlotReservation.TRIP_NOT_OPEN
    return SlotReservation.NO_SLOTS_AVAILABLE


async def release_slot(
    db: AsyncSession,
    trip_id: int,
    now: Optional[datetime] = None
) -> bool:
    """
    Give one slot back to a trip, capped at ``total_slots``.

    Returns:
        True if a slot was returned, False if the trip was already full
    """
    now = now or datetime.utcnow()

    result = await db.execute(
        update(Trip)
        .where(Trip.id == trip_id, Trip.available_slots < Trip.total_slots)
        .values(available_slots=Trip.available_slots + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    released = result.rowcount == 1
    if released:
        logger.info("Released slot on trip %s", trip_id)
    else:
        logger.warning("Release on trip %s ignored: no slot held", trip_id)
    return released


async def resize_capacity(
    db: AsyncSession,
    trip_id: int,
    new_total: int,
    now: Optional[datetime] = None
) -> CapacityChange:
    """
    Change a trip's total slots, keeping held slots intact.

    ``available_slots`` shifts by the same delta as ``total_slots``. The
    update is refused when ``new_total`` is below the number of held slots.
    """
    now = now or datetime.utcnow()

    result = await db.execute(
        update(Trip)
        .where(
            Trip.id == trip_id,
            Trip.total_slots - Trip.available_slots <= new_total
        )
        .values(
            available_slots=Trip.available_slots + (new_total - Trip.total_slots),
            total_slots=new_total,
            updated_at=now
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        return CapacityChange.OK

    exists = await db.execute(select(Trip.id).where(Trip.id == trip_id))
    if exists.scalar_one_or_none() is None:
        return CapacityChange.TRIP_NOT_FOUND
    return CapacityChange.BELOW_HELD_SLOTS


async def count_held_slots(db: AsyncSession, trip_id: int) -> int:
    """Slots currently reserved on a trip (``total - available``)."""
    result = await db.execute(
        select(Trip.total_slots - Trip.available_slots).where(Trip.id == trip_id)
    )
    return result.scalar_one_or_none() or 0
