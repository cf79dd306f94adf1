"""
Audit logging service for tracking state changes on trips and requests.

Audit rows are added to the caller's transaction (flush, not commit) so an
operation and its audit entry are persisted or rolled back together.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Trips
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_UPDATED = "TRIP_UPDATED"
    TRIP_CAPACITY_CHANGED = "TRIP_CAPACITY_CHANGED"
    TRIP_STATUS_CHANGED = "TRIP_STATUS_CHANGED"

    # Request lifecycle
    REQUEST_CREATED = "REQUEST_CREATED"
    REQUEST_ACCEPTED = "REQUEST_ACCEPTED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    PICKUP_VERIFIED = "PICKUP_VERIFIED"
    DELIVERY_VERIFIED = "DELIVERY_VERIFIED"

    # One-time codes
    OTP_VERIFY_FAILED = "OTP_VERIFY_FAILED"
    OTP_REGENERATED = "OTP_REGENERATED"

    # Edits
    REQUEST_DETAILS_UPDATED = "REQUEST_DETAILS_UPDATED"
    RECEIVER_DETAILS_UPDATED = "RECEIVER_DETAILS_UPDATED"


ENTITY_TRIP = "trip"
ENTITY_REQUEST = "parcel_request"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Append an event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: User performing the action
        entity_type: ENTITY_TRIP or ENTITY_REQUEST
        entity_id: ID of the trip or request acted upon
        metadata: Additional context as JSON (never OTP values)

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
