"""
Driver Location / Delivery Service.

Drivers report their position as a place name. The position is geocoded and
stored on the driver, then used to move the parcel they are carrying along:
within DELIVERY_RADIUS_KM of the destination the parcel is DELIVERED,
otherwise IN_TRANSIT.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List

from sqlalchemy import select, desc
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ResourceNotFoundError, BadRequestError, ConflictError, GeocodingError
)
from backend.app.core.reliability import run_critical, run_advisory
from backend.app.domain.geo import Coordinates, haversine_km
from backend.app.domain.parcels.state_machine import LOCATION_TRACKABLE_STATUSES
from backend.app.models.driver import Driver
from backend.app.models.driver_enums import DriverStatus
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.services.geocoding import Geocoder
from backend.app.services.notification_service import NotificationDispatcher
from backend.app.services.status_log import append_status_log

logger = logging.getLogger(__name__)

DELIVERY_RADIUS_KM = 0.3


@dataclass
class LocationUpdateResult:
    status: Optional[ParcelStatus]
    message: Optional[str] = None
    distance_to_destination_km: Optional[float] = None


class DriverLocationService:

    def __init__(self, db: AsyncSession, geocoder: Geocoder, notifier: NotificationDispatcher):
        self.db = db
        self.geocoder = geocoder
        self.notifier = notifier

    async def update_location(self, driver_id: int, parcel_id: int, location_name: str) -> LocationUpdateResult:
        """
        Record the driver's position and derive the parcel status from it.

        The position is stored even when no parcel applies. A parcel applies
        when it belongs to the driver, matches parcel_id, is ASSIGNED,
        PICKED_UP_BY_DRIVER or IN_TRANSIT, and has destination coordinates.

        Args:
            driver_id: Reporting driver
            parcel_id: Parcel the driver is carrying
            location_name: Place name of the current position

        Returns:
            LocationUpdateResult with the new status, or status None when no
            parcel applies

        Raises:
            BadRequestError: empty location, or the place could not be found
            ResourceNotFoundError: driver absent or archived
            ConflictError: the parcel changed concurrently
        """
        if not location_name or not location_name.strip():
            raise BadRequestError("Location name is required")
        location_name = location_name.strip()

        driver = await self.db.get(Driver, driver_id)
        if not driver or driver.deleted_at is not None:
            raise ResourceNotFoundError("Driver", driver_id)

        try:
            position = await run_critical(
                "Geocoding driver location", self.geocoder.geocode, location_name,
                timeout=settings.critical_call_timeout_seconds, error_cls=GeocodingError
            )
        except GeocodingError as e:
            raise BadRequestError(
                f'Unable to find the location "{location_name}". '
                "Please check the spelling or try a more specific place name.",
                details={"reason": e.message}
            )

        now = datetime.utcnow()
        driver.current_lat = position.lat
        driver.current_lng = position.lng
        driver.updated_at = now
        await self.db.commit()
        logger.info("Driver %s at %s (%.5f, %.5f)", driver_id, location_name, position.lat, position.lng)

        result = await self.db.execute(
            select(Parcel).where(Parcel.id == parcel_id, Parcel.driver_id == driver_id)
        )
        parcel = result.scalar_one_or_none()

        if not parcel:
            return LocationUpdateResult(status=None, message="Parcel not assigned to this driver or not found")

        if parcel.status not in LOCATION_TRACKABLE_STATUSES:
            return LocationUpdateResult(
                status=None,
                message=f'Parcel is in status "{parcel.status.value}" which is not active for location updates'
            )

        if parcel.destination_lat is None or parcel.destination_lng is None:
            return LocationUpdateResult(status=None, message="Parcel destination coordinates are unknown")

        distance = haversine_km(position, Coordinates(parcel.destination_lat, parcel.destination_lng))
        new_status = ParcelStatus.DELIVERED if distance <= DELIVERY_RADIUS_KM else ParcelStatus.IN_TRANSIT

        if parcel.status != new_status:
            parcel.status = new_status
            append_status_log(self.db, parcel.id, new_status, now)
        parcel.updated_at = now
        if new_status == ParcelStatus.DELIVERED:
            parcel.delivered_at = now

        try:
            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            raise ConflictError(
                "Parcel was modified by another request, please retry",
                details={"parcel_id": parcel.id}
            )
        await self.db.refresh(parcel)

        timeout = settings.advisory_call_timeout_seconds
        if new_status == ParcelStatus.DELIVERED:
            message = "Parcel delivered"
            await run_advisory(
                "Delivery email", self.notifier.send_delivery_notification, parcel, driver.name,
                timeout=timeout
            )
        else:
            message = f"Parcel in transit, {distance:.1f} km from destination"

        await run_advisory(
            "Location update email", self.notifier.send_location_update_notification,
            parcel, location_name, message,
            timeout=timeout
        )

        return LocationUpdateResult(
            status=new_status,
            message=message,
            distance_to_destination_km=round(distance, 3)
        )

    async def mark_parcel_picked_up(self, driver_id: int, parcel_id: int) -> Parcel:
        """
        Driver confirms they collected the parcel from the sender.

        Raises:
            ResourceNotFoundError: parcel absent
            BadRequestError: parcel not assigned to this driver, or not ASSIGNED
            ConflictError: the parcel changed concurrently
        """
        parcel = await self.db.get(Parcel, parcel_id)
        if not parcel:
            raise ResourceNotFoundError("Parcel", parcel_id)

        if parcel.driver_id != driver_id:
            raise BadRequestError("Parcel is not assigned to you")

        if parcel.status != ParcelStatus.ASSIGNED:
            raise BadRequestError(
                f"Parcel must be ASSIGNED to be picked up, current status is {parcel.status.value}",
                details={"current_status": parcel.status.value}
            )

        now = datetime.utcnow()
        parcel.status = ParcelStatus.PICKED_UP_BY_DRIVER
        parcel.picked_at = now
        parcel.updated_at = now
        append_status_log(self.db, parcel.id, ParcelStatus.PICKED_UP_BY_DRIVER, now)

        driver = await self.db.get(Driver, driver_id)
        if driver and driver.status != DriverStatus.ON_DELIVERY:
            driver.status = DriverStatus.ON_DELIVERY
            driver.can_receive_assignments = False
            driver.updated_at = now

        try:
            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            raise ConflictError(
                "Parcel was modified by another request, please retry",
                details={"parcel_id": parcel.id}
            )
        await self.db.refresh(parcel)
        logger.info("Parcel %s picked up by driver %s", parcel.tracking_id, driver_id)

        await run_advisory(
            "Pickup email", self.notifier.send_pickup_notification, parcel,
            driver.name if driver else None,
            timeout=settings.advisory_call_timeout_seconds
        )
        return parcel

    async def list_my_parcels(self, driver_id: int) -> List[Parcel]:
        result = await self.db.execute(
            select(Parcel)
            .where(Parcel.driver_id == driver_id)
            .order_by(desc(Parcel.updated_at), desc(Parcel.id))
        )
        return result.scalars().all()
