"""
Driver administration.

Admins create, edit, archive, restore and delete drivers. Archiving revokes
the driver's tokens; restoring lifts the revocation.
"""

import logging
from datetime import datetime
from typing import List

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError, BadRequestError, ConflictError
from backend.app.core.security import get_password_hash
from backend.app.core.token_revocation import revoke_all_principal_tokens, clear_principal_token_revocation
from backend.app.models.driver import Driver
from backend.app.models.driver_enums import DriverStatus
from backend.app.models.parcel import Parcel
from backend.app.models.user import User
from backend.app.schemas.driver import DriverCreate, DriverUpdate

logger = logging.getLogger(__name__)


class DriverService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_driver(self, data: DriverCreate) -> Driver:
        email = str(data.email).lower()
        await self._ensure_email_free(email)

        driver = Driver(
            name=data.name,
            email=email,
            hashed_password=get_password_hash(data.password),
            mode=data.mode,
            status=DriverStatus.AVAILABLE,
            can_receive_assignments=True,
        )
        self.db.add(driver)
        await self.db.commit()
        await self.db.refresh(driver)
        logger.info("Driver %s created", driver.id)
        return driver

    async def list_drivers(self) -> List[Driver]:
        """All drivers, archived ones included."""
        result = await self.db.execute(select(Driver).order_by(desc(Driver.created_at), desc(Driver.id)))
        return result.scalars().all()

    async def list_available_drivers(self) -> List[Driver]:
        result = await self.db.execute(
            select(Driver)
            .where(
                Driver.status == DriverStatus.AVAILABLE,
                Driver.can_receive_assignments == True,
                Driver.deleted_at.is_(None)
            )
            .order_by(desc(Driver.created_at), desc(Driver.id))
        )
        return result.scalars().all()

    async def get_driver(self, driver_id: int) -> Driver:
        driver = await self.db.get(Driver, driver_id)
        if not driver:
            raise ResourceNotFoundError("Driver", driver_id)
        return driver

    async def count_parcels(self, driver_id: int) -> int:
        result = await self.db.execute(select(func.count(Parcel.id)).where(Parcel.driver_id == driver_id))
        return result.scalar() or 0

    async def update_driver(self, driver_id: int, data: DriverUpdate) -> Driver:
        """
        Edit driver details.

        A status change keeps can_receive_assignments in step with it.
        """
        driver = await self.get_driver(driver_id)
        changes = data.model_dump(exclude_unset=True)

        if "email" in changes and changes["email"] is not None:
            email = str(changes["email"]).lower()
            if email != driver.email:
                await self._ensure_email_free(email)
            driver.email = email
        if changes.get("name"):
            driver.name = changes["name"]
        if changes.get("mode"):
            driver.mode = changes["mode"]
        if changes.get("status"):
            self._set_status(driver, changes["status"])

        driver.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(driver)
        return driver

    async def update_driver_status(self, driver_id: int, status: DriverStatus) -> Driver:
        driver = await self.get_driver(driver_id)
        if driver.deleted_at is not None:
            raise BadRequestError("Archived drivers must be restored before changing status")

        self._set_status(driver, status)
        driver.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(driver)
        logger.info("Driver %s status set to %s", driver.id, status.value)
        return driver

    async def soft_delete_driver(self, driver_id: int) -> Driver:
        """
        Archive a driver: suspended, unassignable and logged out everywhere.
        """
        driver = await self.get_driver(driver_id)
        if driver.deleted_at is not None:
            raise ConflictError("Driver is already archived")

        now = datetime.utcnow()
        driver.deleted_at = now
        driver.status = DriverStatus.SUSPENDED
        driver.can_receive_assignments = False
        driver.updated_at = now
        await self.db.commit()
        await self.db.refresh(driver)

        await revoke_all_principal_tokens("driver", driver.id)
        logger.info("Driver %s archived", driver.id)
        return driver

    async def restore_driver(self, driver_id: int) -> Driver:
        driver = await self.get_driver(driver_id)
        if driver.deleted_at is None:
            raise BadRequestError("Driver is not archived")

        driver.deleted_at = None
        driver.status = DriverStatus.AVAILABLE
        driver.can_receive_assignments = True
        driver.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(driver)

        await clear_principal_token_revocation("driver", driver.id)
        logger.info("Driver %s restored", driver.id)
        return driver

    async def permanently_delete_driver(self, driver_id: int) -> None:
        """
        Remove a driver row. Refused while any parcel references the driver.
        """
        driver = await self.get_driver(driver_id)

        parcel_count = await self.count_parcels(driver.id)
        if parcel_count > 0:
            raise BadRequestError(
                "Cannot delete a driver with parcel history. Archive the driver instead.",
                details={"parcel_count": parcel_count}
            )

        await self.db.delete(driver)
        await self.db.commit()
        logger.info("Driver %s permanently deleted", driver_id)

    @staticmethod
    def _set_status(driver: Driver, status: DriverStatus) -> None:
        driver.status = status
        driver.can_receive_assignments = status == DriverStatus.AVAILABLE

    async def _ensure_email_free(self, email: str) -> None:
        driver = await self.db.execute(select(Driver.id).where(func.lower(Driver.email) == email))
        if driver.scalar_one_or_none() is not None:
            raise ConflictError("Email already registered", details={"email": email})

        user = await self.db.execute(select(User.id).where(func.lower(User.email) == email))
        if user.scalar_one_or_none() is not None:
            raise ConflictError("Email already registered", details={"email": email})
