"""
Parcel Status Log database model.

Append-only history of a parcel's status transitions.
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.parcel_enums import ParcelStatus


class ParcelStatusLog(Base):
    """
    One row per status-affecting transition. Rows are never updated or deleted.
    """
    __tablename__ = "parcel_status_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    status = Column(Enum(ParcelStatus), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ParcelStatusLog(parcel_id={self.parcel_id}, status='{self.status.value}')>"
