"""
Notification Log Database Model.

Records every email the dispatcher attempted, successful or not.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
import enum


class NotificationKind(str, enum.Enum):
    PARCEL_REGISTERED = "PARCEL_REGISTERED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    PARCEL_PICKED_UP = "PARCEL_PICKED_UP"
    PARCEL_DELIVERED = "PARCEL_DELIVERED"
    READY_FOR_COLLECTION = "READY_FOR_COLLECTION"
    LOCATION_UPDATE = "LOCATION_UPDATE"


class NotificationStatus(str, enum.Enum):
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationLog(Base):
    """
    Email delivery record.
    """
    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey("parcels.id"), nullable=True, index=True)
    recipient_email = Column(String(255), nullable=False, index=True)
    kind = Column(Enum(NotificationKind), nullable=False)
    subject = Column(String(255), nullable=False)

    status = Column(Enum(NotificationStatus), nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<NotificationLog(id={self.id}, kind='{self.kind.value}', status='{self.status.value}')>"
