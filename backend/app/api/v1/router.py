"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import trips, requests, notifications

router = APIRouter()

# Trips published by travellers
router.include_router(trips.router)

# Parcel request lifecycle
router.include_router(requests.router)

# In-app notifications
router.include_router(notifications.router)
