"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """
    Trip status enumeration.

    Status flow:
        OPEN → IN_PROGRESS (first accepted request) → COMPLETED
        OPEN / IN_PROGRESS → CANCELLED (owner-driven, also the soft delete)
    """
    OPEN = "open"  # Published, accepting parcel requests
    IN_PROGRESS = "in_progress"  # At least one request accepted
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransportMode(str, enum.Enum):
    TRAIN = "train"
    BUS = "bus"
    FLIGHT = "flight"
    CAR = "car"


class PackageCategory(str, enum.Enum):
    """Parcel categories a traveller may allow on a trip."""
    DOCUMENTS = "documents"
    CLOTHING = "clothing"
    MEDICINES = "medicines"
    BOOKS = "books"
    SMALL_ITEMS = "small_items"


# Statuses from which a trip may still hand out slots
RESERVABLE_TRIP_STATUSES = (TripStatus.OPEN, TripStatus.IN_PROGRESS)

# Owner-driven terminal transitions
TERMINAL_TRIP_STATUSES = (TripStatus.COMPLETED, TripStatus.CANCELLED)


def enum_values(enum_cls):
    """Persist enum members by value rather than by name."""
    return [member.value for member in enum_cls]
