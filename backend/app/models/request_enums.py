"""
Parcel request enumerations.
"""

import enum


class RequestStatus(str, enum.Enum):
    """
    Parcel request status enumeration.

    Status flow:
        PENDING → ACCEPTED → PICKED_UP → DELIVERED
        PENDING → REJECTED
        PENDING / ACCEPTED → CANCELLED
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PartyRole(str, enum.Enum):
    """The two parties of a request; also records who cancelled."""
    SENDER = "sender"
    TRAVELLER = "traveller"


class OtpPurpose(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
