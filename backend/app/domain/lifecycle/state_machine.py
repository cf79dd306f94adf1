"""
Parcel request state machine.

Owns the transition table, the guards that depend only on request/trip
state and time, and the field side effects of each transition. Slot
accounting and persistence are orchestrated by the lifecycle service.
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional

from backend.app.core.exceptions import (
    StateConflictError, UnauthorizedError, CancellationWindowClosedError, TooLateToEditError
)
from backend.app.models.parcel_request import ParcelRequest
from backend.app.models.request_enums import RequestStatus, PartyRole, OtpPurpose


TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.ACCEPTED, RequestStatus.REJECTED, RequestStatus.CANCELLED
    }),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.PICKED_UP, RequestStatus.CANCELLED}),
    RequestStatus.PICKED_UP: frozenset({RequestStatus.DELIVERED}),
    RequestStatus.DELIVERED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

_unmapped = set(RequestStatus) - set(TRANSITIONS)
if _unmapped:
    raise RuntimeError(f"Transition table is missing statuses: {sorted(s.value for s in _unmapped)}")

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Accepting decrements the trip counter, cancelling an accepted request
# increments it again. Nothing else touches slots.
SLOT_HOLDING_STATUSES = frozenset({RequestStatus.ACCEPTED})

DETAIL_EDITABLE_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.ACCEPTED})

OTP_OWNING_STATUS = {
    OtpPurpose.PICKUP: RequestStatus.ACCEPTED,
    OtpPurpose.DELIVERY: RequestStatus.PICKED_UP,
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(current: RequestStatus, target: RequestStatus) -> None:
    """Raise StateConflictError unless ``current -> target`` is in the table."""
    if not can_transition(current, target):
        raise StateConflictError(
            f"Cannot move request from {current.value} to {target.value}",
            current_status=current.value
        )


def ensure_status(current: RequestStatus, expected: RequestStatus, action: str) -> None:
    if current != expected:
        raise StateConflictError(
            f"Cannot {action} while request is {current.value}",
            current_status=current.value
        )


def hours_until(departure_at: datetime, now: datetime) -> float:
    return (departure_at - now).total_seconds() / 3600


def ensure_cancellation_window(departure_at: datetime, now: datetime, window_hours: int) -> None:
    """
    Block cancelling an accepted request close to departure.

    The boundary itself is blocked: exactly ``window_hours`` before departure
    is already too late.
    """
    if departure_at - now <= timedelta(hours=window_hours):
        raise CancellationWindowClosedError(
            hours_until_departure=max(hours_until(departure_at, now), 0.0),
            window_hours=window_hours
        )


def check_cancel(
    request: ParcelRequest,
    role: PartyRole,
    departure_at: datetime,
    now: datetime,
    window_hours: int
) -> None:
    """
    Guards for ``-> CANCELLED``.

    PENDING may only be withdrawn by the sender (a traveller rejects instead).
    ACCEPTED may be cancelled by either party outside the cancellation window.
    """
    ensure_transition(request.status, RequestStatus.CANCELLED)

    if request.status == RequestStatus.PENDING and role != PartyRole.SENDER:
        raise UnauthorizedError("Only the sender can cancel a pending request; reject it instead")

    if request.status == RequestStatus.ACCEPTED:
        ensure_cancellation_window(departure_at, now, window_hours)


def can_edit_request_details(status: RequestStatus) -> bool:
    """Parcel details are frozen once the traveller holds the parcel."""
    return status in DETAIL_EDITABLE_STATUSES


def ensure_request_details_editable(status: RequestStatus) -> None:
    if not can_edit_request_details(status):
        raise TooLateToEditError(
            f"Parcel details can no longer be changed while request is {status.value}",
            current_status=status.value
        )


def ensure_receiver_details_editable(status: RequestStatus) -> None:
    if status == RequestStatus.DELIVERED:
        raise TooLateToEditError(
            "Receiver details cannot be changed after delivery",
            current_status=status.value
        )


def ensure_otp_state(request: ParcelRequest, purpose: OtpPurpose, action: str) -> None:
    ensure_status(request.status, OTP_OWNING_STATUS[purpose], action)


# Side effects

def apply_accept(
    request: ParcelRequest,
    pickup_otp: str,
    pickup_otp_expiry: datetime,
    now: datetime,
    traveller_notes: Optional[str] = None
) -> None:
    ensure_transition(request.status, RequestStatus.ACCEPTED)
    request.status = RequestStatus.ACCEPTED
    request.pickup_otp = pickup_otp
    request.pickup_otp_expiry = pickup_otp_expiry
    request.failed_pickup_attempts = 0
    request.pickup_blocked_until = None
    request.accepted_at = now
    if traveller_notes:
        request.traveller_notes = traveller_notes
    request.updated_at = now


def apply_reject(request: ParcelRequest, reason: Optional[str], now: datetime) -> None:
    ensure_transition(request.status, RequestStatus.REJECTED)
    request.status = RequestStatus.REJECTED
    request.rejection_reason = reason
    request.rejected_at = now
    request.updated_at = now


def apply_cancel(request: ParcelRequest, role: PartyRole, reason: Optional[str], now: datetime) -> bool:
    """
    Mark the request cancelled.

    Returns:
        True if the request held a trip slot that must be released
    """
    ensure_transition(request.status, RequestStatus.CANCELLED)
    held_slot = request.status in SLOT_HOLDING_STATUSES

    request.status = RequestStatus.CANCELLED
    request.cancelled_by = role
    request.cancelled_at = now
    if reason:
        request.rejection_reason = reason
    request.pickup_otp = None
    request.pickup_otp_expiry = None
    request.updated_at = now
    return held_slot


def apply_pickup(
    request: ParcelRequest,
    delivery_otp: str,
    delivery_otp_expiry: datetime,
    now: datetime
) -> None:
    ensure_transition(request.status, RequestStatus.PICKED_UP)
    request.status = RequestStatus.PICKED_UP
    request.pickup_otp = None
    request.pickup_otp_expiry = None
    request.failed_pickup_attempts = 0
    request.pickup_blocked_until = None
    request.delivery_otp = delivery_otp
    request.delivery_otp_expiry = delivery_otp_expiry
    request.failed_delivery_attempts = 0
    request.delivery_blocked_until = None
    request.picked_at = now
    request.updated_at = now


def apply_delivery(request: ParcelRequest, now: datetime) -> None:
    ensure_transition(request.status, RequestStatus.DELIVERED)
    request.status = RequestStatus.DELIVERED
    request.delivery_otp = None
    request.delivery_otp_expiry = None
    request.failed_delivery_attempts = 0
    request.delivery_blocked_until = None
    request.delivered_at = now
    request.updated_at = now


def apply_new_otp(request: ParcelRequest, purpose: OtpPurpose, code: str, expires_at: datetime, now: datetime) -> None:
    """Rotate the code of the challenge owned by the current status."""
    ensure_otp_state(request, purpose, f"regenerate the {purpose.value} OTP")
    if purpose == OtpPurpose.PICKUP:
        request.pickup_otp = code
        request.pickup_otp_expiry = expires_at
        request.failed_pickup_attempts = 0
    else:
        request.delivery_otp = code
        request.delivery_otp_expiry = expires_at
        request.failed_delivery_attempts = 0
    request.updated_at = now
