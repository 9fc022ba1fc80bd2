"""
Parcel status history.

Append-only log of status transitions, read by the tracking views.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, asc

from backend.app.models.parcel_status_log import ParcelStatusLog
from backend.app.models.parcel_enums import ParcelStatus


def append_status_log(
    db: AsyncSession,
    parcel_id: int,
    status: ParcelStatus,
    updated_at: Optional[datetime] = None
) -> ParcelStatusLog:
    """
    Stage a status log row on the session.

    The row is written by the caller's commit so it lands in the same
    transaction as the transition it records.

    Args:
        db: Database session
        parcel_id: Parcel whose status changed
        status: Resulting status
        updated_at: Transition instant (same value as the parcel update)

    Returns:
        The pending ParcelStatusLog instance
    """
    entry = ParcelStatusLog(
        parcel_id=parcel_id,
        status=status,
        updated_at=updated_at or datetime.utcnow()
    )
    db.add(entry)
    return entry


async def get_status_history(db: AsyncSession, parcel_id: int) -> List[ParcelStatusLog]:
    """
    Status history of a parcel, oldest first.
    """
    result = await db.execute(
        select(ParcelStatusLog)
        .where(ParcelStatusLog.parcel_id == parcel_id)
        .order_by(asc(ParcelStatusLog.updated_at), asc(ParcelStatusLog.id))
    )
    return result.scalars().all()
