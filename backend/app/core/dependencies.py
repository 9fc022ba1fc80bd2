"""
FastAPI dependencies.

Authentication of the caller and construction of the parcel services with
their external collaborators (geocoder, distance provider, email transport).
Tests override the collaborator providers through app.dependency_overrides.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from backend.app.core.exceptions import (
    AuthenticationError, TokenRevokedError, InsufficientPermissionsError
)
from backend.app.core.jwt import decode_access_token
from backend.app.core.token_revocation import is_token_revoked, are_principal_tokens_revoked
from backend.app.db.session import get_db, get_session_factory
from backend.app.models.user import User
from backend.app.models.driver import Driver
from backend.app.models.enums import UserRole
from backend.app.services.geocoding import (
    Geocoder, DistanceProvider, build_geocoder, build_distance_provider
)
from backend.app.services.notification_service import (
    EmailTransport, NotificationDispatcher, SmtpEmailTransport
)
from backend.app.domain.parcels.lifecycle_service import ParcelLifecycleService
from backend.app.domain.drivers.location_service import DriverLocationService
from backend.app.domain.drivers.driver_service import DriverService

# HTTP Bearer security scheme
security = HTTPBearer()

_geocoder = build_geocoder()
_distance_provider = build_distance_provider()
_email_transport = SmtpEmailTransport()


def principal_kind(role: str) -> str:
    """Token revocation namespace: drivers and user accounts live in different tables."""
    return "driver" if role == UserRole.DRIVER.value else "user"


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Authenticate the bearer token.

    Checks:
    1. Token signature and expiry
    2. Token not individually revoked (logout)
    3. Principal tokens not revoked (driver archived)
    4. Principal still exists and is active

    Returns:
        Decoded token payload with the raw token under "token"
    """
    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    principal_id = payload.get("user_id")
    role = payload.get("role")
    if not principal_id or not role:
        raise AuthenticationError("Invalid token payload")

    if await is_token_revoked(token):
        raise TokenRevokedError()

    if await are_principal_tokens_revoked(principal_kind(role), principal_id):
        raise AuthenticationError("Access has been revoked")

    if role == UserRole.DRIVER.value:
        result = await db.execute(select(Driver).where(Driver.id == principal_id))
        driver = result.scalar_one_or_none()
        if not driver:
            raise AuthenticationError("Driver not found")
        if driver.deleted_at is not None:
            raise InsufficientPermissionsError("Driver account is archived")
    else:
        result = await db.execute(select(User).where(User.id == principal_id))
        user = result.scalar_one_or_none()
        if not user:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise InsufficientPermissionsError("User account is inactive")

    return {**payload, "token": token}


# External collaborators

def get_geocoder() -> Geocoder:
    return _geocoder


def get_distance_provider() -> DistanceProvider:
    return _distance_provider


def get_email_transport() -> EmailTransport:
    return _email_transport


def get_notifier(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    transport: EmailTransport = Depends(get_email_transport)
) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory, transport)


# Services

def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
    geocoder: Geocoder = Depends(get_geocoder),
    distance_provider: DistanceProvider = Depends(get_distance_provider),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> ParcelLifecycleService:
    return ParcelLifecycleService(db, geocoder, distance_provider, notifier)


def get_location_service(
    db: AsyncSession = Depends(get_db),
    geocoder: Geocoder = Depends(get_geocoder),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> DriverLocationService:
    return DriverLocationService(db, geocoder, notifier)


def get_driver_service(db: AsyncSession = Depends(get_db)) -> DriverService:
    return DriverService(db)
