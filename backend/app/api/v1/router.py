"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import auth, parcels, admin, driver, users

router = APIRouter()

# Authentication (accounts and drivers)
router.include_router(auth.router)

# Parcel lifecycle
router.include_router(parcels.router)

# Admin dashboard, overrides and driver management
router.include_router(admin.router)

# Driver location and pickup
router.include_router(driver.router)

# Sender / receiver views
router.include_router(users.router)
