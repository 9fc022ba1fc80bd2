"""
Tracking ID Generator.

Tracking IDs take the form PKG-<n>. The numeric part is stored separately
on the parcel (tracking_number) so the next candidate comes from the store
instead of a process-local counter. The unique constraint on tracking_id
remains the final authority when two creations race.
"""

import logging
from typing import Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import TrackingIdGenerationError
from backend.app.models.parcel import Parcel

logger = logging.getLogger(__name__)


def format_tracking_id(number: int, prefix: str = None) -> str:
    return f"{prefix or settings.tracking_id_prefix}-{number}"


async def generate_unique_tracking_id(
    db: AsyncSession,
    seed: int = None,
    max_attempts: int = None
) -> Tuple[str, int]:
    """
    Produce the next unused tracking ID.

    Starts one above the highest stored tracking number (or the seed, if
    higher) and probes each candidate until an unused one is found.

    Returns:
        (tracking_id, tracking_number)

    Raises:
        TrackingIdGenerationError: the store could not be queried, or no
        unused ID was found within max_attempts candidates
    """
    seed = settings.tracking_id_seed if seed is None else seed
    max_attempts = max_attempts or settings.tracking_id_max_attempts

    try:
        result = await db.execute(select(func.max(Parcel.tracking_number)))
        highest = result.scalar()
        candidate = max(highest or 0, seed) + 1

        for _ in range(max_attempts):
            tracking_id = format_tracking_id(candidate)
            exists = await db.execute(
                select(Parcel.id).where(Parcel.tracking_id == tracking_id)
            )
            if exists.scalar_one_or_none() is None:
                return tracking_id, candidate
            candidate += 1
    except SQLAlchemyError as e:
        logger.error("Tracking ID probe failed: %s", e)
        raise TrackingIdGenerationError(f"Failed to generate tracking ID: {e}")

    raise TrackingIdGenerationError(
        f"No unused tracking ID found after {max_attempts} attempts",
        details={"last_candidate": candidate - 1}
    )
