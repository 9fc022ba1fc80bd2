"""
Driver database model.

Drivers are created by admins, report their position and carry parcels.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.driver_enums import DriverStatus, CourierMode


class Driver(Base):
    """
    Driver model.

    can_receive_assignments is maintained alongside status and is True only
    while the driver is AVAILABLE. deleted_at marks an archived driver.
    """
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    mode = Column(Enum(CourierMode), nullable=False)

    # Availability
    status = Column(Enum(DriverStatus), default=DriverStatus.AVAILABLE, nullable=False, index=True)
    can_receive_assignments = Column(Boolean, default=True, nullable=False)

    # Last reported position
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)

    # Soft delete
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_assignable(self) -> bool:
        return (
            self.deleted_at is None
            and self.status == DriverStatus.AVAILABLE
            and bool(self.can_receive_assignments)
        )

    def __repr__(self):
        return f"<Driver(id={self.id}, email='{self.email}', status='{self.status.value}')>"
