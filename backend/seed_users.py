"""
Database seeding script for initial accounts.

Creates the ADMIN account and one sample driver for development.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.core.config import settings
from backend.app.db.session import AsyncSessionLocal
from backend.app.models.user import User
from backend.app.models.driver import Driver
from backend.app.models.enums import UserRole
from backend.app.models.driver_enums import DriverStatus, CourierMode
from backend.app.core.security import get_password_hash
from sqlalchemy import select


async def seed_users():
    """
    Seed the admin account and a sample driver.

    Creates:
    - 1 ADMIN account (settings.admin_email)
    - 1 AVAILABLE motorcycle driver
    """
    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")

        result = await db.execute(
            select(User).where(User.email == settings.admin_email)
        )
        existing_admin = result.scalar_one_or_none()

        if existing_admin:
            print("ℹ️  ADMIN account already exists, skipping seeding")
            return

        admin_user = User(
            name="Admin",
            email=settings.admin_email,
            hashed_password=get_password_hash("admin123"),
            role=UserRole.ADMIN,
            is_active=True,
        )
        db.add(admin_user)
        print(f"✅ Created ADMIN account ({settings.admin_email} / admin123)")

        driver = Driver(
            name="Sample Driver",
            email="driver@senditcourier.com",
            hashed_password=get_password_hash("driver123"),
            mode=CourierMode.MOTORCYCLE,
            status=DriverStatus.AVAILABLE,
            can_receive_assignments=True,
        )
        db.add(driver)
        print("✅ Created driver (driver@senditcourier.com / driver123)")

        await db.commit()

        print("\n🎉 Seeding completed successfully!")
        print("\nNote: senders and receivers register via POST /v1/auth/register")


if __name__ == "__main__":
    asyncio.run(seed_users())
