"""
Driver availability reconciliation.

A driver is released back to AVAILABLE once none of their parcels are still
mid-flight. Every completing transition goes through this one step.
"""

import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.domain.parcels.state_machine import ACTIVE_STATUSES
from backend.app.models.driver import Driver
from backend.app.models.driver_enums import DriverStatus
from backend.app.models.parcel import Parcel

logger = logging.getLogger(__name__)


async def count_active_parcels(
    db: AsyncSession,
    driver_id: int,
    exclude_parcel_id: Optional[int] = None
) -> int:
    query = select(func.count(Parcel.id)).where(
        Parcel.driver_id == driver_id,
        Parcel.status.in_(ACTIVE_STATUSES)
    )
    if exclude_parcel_id is not None:
        query = query.where(Parcel.id != exclude_parcel_id)

    result = await db.execute(query)
    return result.scalar() or 0


async def reconcile_driver_availability(
    db: AsyncSession,
    driver_id: Optional[int],
    exclude_parcel_id: Optional[int] = None
) -> bool:
    """
    Make the driver AVAILABLE if they have no other active parcel.

    Runs inside the caller's transaction: changes are staged on the session,
    never flushed or committed here. Archived drivers and drivers in an
    administrative status (OUT_SICK, ON_LEAVE, SUSPENDED) are left alone.
    Calling it twice has the same effect as calling it once.

    Args:
        db: Database session owning the surrounding transaction
        driver_id: Driver to reconcile (None is a no-op)
        exclude_parcel_id: Parcel being completed by the caller

    Returns:
        True if the driver was released
    """
    if driver_id is None:
        return False

    driver = await db.get(Driver, driver_id)
    if not driver or driver.deleted_at is not None:
        return False

    if driver.status != DriverStatus.ON_DELIVERY:
        return False

    if await count_active_parcels(db, driver_id, exclude_parcel_id) > 0:
        return False

    driver.status = DriverStatus.AVAILABLE
    driver.can_receive_assignments = True
    logger.info("Driver %s released: no active parcels left", driver_id)
    return True
