"""
Shared test data builders, a frozen clock and an in-process Redis double.
"""

from datetime import datetime, timedelta

from backend.app.core.jwt import create_access_token
from backend.app.schemas.parcel_request import ParcelRequestCreate
from backend.app.schemas.trip import TripCreate
from backend.app.services.request_lifecycle import RequestLifecycleService
from backend.app.services.trip_service import TripService

TRAVELLER_ID = "traveller-1"
SENDER_ID = "sender-1"
OTHER_SENDER_ID = "sender-2"
STRANGER_ID = "stranger-1"

PHOTOS = [
    "https://storage.example.com/parcels/front.jpg",
    "https://storage.example.com/parcels/back.jpg",
]


def utc_now() -> datetime:
    return datetime.utcnow().replace(second=0, microsecond=0)


class FrozenClock:
    """Injectable clock; tests move time instead of sleeping."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def trip_payload(departure: datetime = None, **overrides) -> dict:
    departure = departure or utc_now() + timedelta(days=3)
    arrival = departure + timedelta(hours=6)
    payload = {
        "source": "Mumbai",
        "destination": "Pune",
        "transport_mode": "train",
        "departure_date": departure.date(),
        "departure_time": departure.time(),
        "arrival_date": arrival.date(),
        "arrival_time": arrival.time(),
        "total_slots": 3,
        "allowed_categories": ["documents", "books"],
        "pnr_number": "PNR1234",
        "ticket_file_url": "https://storage.example.com/tickets/pnr1234.pdf",
        "notes": None,
    }
    payload.update(overrides)
    return payload


def request_payload(trip_id: int, **overrides) -> dict:
    payload = {
        "trip_id": trip_id,
        "item_description": "A box of paperback books",
        "category": "books",
        "parcel_photos": list(PHOTOS),
        "delivery_contact_name": "Asha Rao",
        "delivery_contact_phone": "9876543210",
        "sender_notes": None,
    }
    payload.update(overrides)
    return payload


def auth_headers(user_id: str) -> dict:
    token = create_access_token(data={"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


async def publish_trip(service: TripService, traveller_id: str = TRAVELLER_ID, **overrides):
    return await service.create_trip(traveller_id, TripCreate(**trip_payload(**overrides)))


async def submit_request(service: RequestLifecycleService, trip_id: int, sender_id: str = SENDER_ID, **overrides):
    return await service.create_request(sender_id, ParcelRequestCreate(**request_payload(trip_id, **overrides)))


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def expire(self, key, seconds):
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    async def ttl(self, key):
        if key not in self.store:
            return -2
        return self.ttls.get(key, -1)

    async def delete(self, key):
        if self._closed:
            return 0
        self.ttls.pop(key, None)
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.ttls = {}

    async def aclose(self):
        self._closed = True
        self.store = {}
