"""
Parcel database model.

A parcel is a single shipment request tracked end-to-end by its tracking ID.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.parcel_enums import ParcelStatus, ParcelType, TransportMode


class Parcel(Base):
    """
    Parcel model.

    Sender and receiver details are denormalized at creation; sender_id and
    receiver_id are linked once a matching account exists. driver_id is set
    while the parcel is assigned or being handled by a driver.

    version is the optimistic concurrency counter: an UPDATE based on a stale
    read matches no row and raises StaleDataError.
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Tracking
    tracking_id = Column(String(32), unique=True, nullable=False, index=True)
    tracking_number = Column(Integer, unique=True, nullable=False, index=True)

    # Parties
    sender_name = Column(String(150), nullable=False)
    sender_email = Column(String(255), nullable=False, index=True)
    receiver_name = Column(String(150), nullable=False)
    receiver_email = Column(String(255), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    receiver_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)

    # Route
    from_location = Column(String(255), nullable=False)
    to_location = Column(String(255), nullable=False)
    from_lat = Column(Float, nullable=True)
    from_lng = Column(Float, nullable=True)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    distance = Column(Float, nullable=False)

    # Shipment details
    type = Column(Enum(ParcelType), nullable=False)
    weight = Column(Float, nullable=False)
    mode = Column(Enum(TransportMode), nullable=False)
    description = Column(String(500), nullable=True)
    price = Column(Integer, nullable=False)

    # Lifecycle
    status = Column(Enum(ParcelStatus), default=ParcelStatus.PENDING, nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    picked_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Parcel(id={self.id}, tracking_id='{self.tracking_id}', status='{self.status.value}')>"
