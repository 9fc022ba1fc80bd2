"""
Parcel Pydantic schemas.

Defines request and response models for parcel creation, tracking and
status transitions.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import Optional, List
from backend.app.models.parcel_enums import ParcelStatus, ParcelType, TransportMode
from backend.app.models.driver_enums import DriverStatus, CourierMode


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    sender_name: str = Field(..., min_length=1, max_length=150, description="Sender full name")
    sender_email: EmailStr = Field(..., description="Sender email address")
    receiver_name: str = Field(..., min_length=1, max_length=150, description="Receiver full name")
    receiver_email: EmailStr = Field(..., description="Receiver email address")
    from_location: str = Field(..., min_length=1, max_length=255, description="Pickup place name")
    to_location: str = Field(..., min_length=1, max_length=255, description="Drop-off place name")
    type: ParcelType
    weight: float = Field(..., gt=0, description="Weight in kilograms")
    mode: TransportMode = TransportMode.STANDARD
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("sender_name", "receiver_name", "from_location", "to_location")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ParcelStatusUpdate(BaseModel):
    """Schema for status transitions (driver and admin)."""
    status: ParcelStatus


class AssignDriverRequest(BaseModel):
    driver_id: int = Field(..., gt=0)


class LocationUpdateRequest(BaseModel):
    """Driver-reported position as a place name."""
    location: str = Field(..., max_length=255, description="Place name, e.g. 'Westlands, Nairobi'")


class LocationUpdateResponse(BaseModel):
    status: Optional[ParcelStatus] = None
    message: Optional[str] = None
    distance_to_destination_km: Optional[float] = None


class DriverSummary(BaseModel):
    id: int
    name: str
    email: str
    mode: CourierMode
    status: DriverStatus
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None

    class Config:
        from_attributes = True


class StatusLogResponse(BaseModel):
    id: int
    parcel_id: int
    status: ParcelStatus
    updated_at: datetime

    class Config:
        from_attributes = True


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    tracking_id: str
    sender_name: str
    sender_email: str
    receiver_name: str
    receiver_email: str
    sender_id: Optional[int] = None
    receiver_id: Optional[int] = None
    from_location: str
    to_location: str
    from_lat: Optional[float] = None
    from_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    distance: float
    type: ParcelType
    weight: float
    mode: TransportMode
    description: Optional[str] = None
    price: int
    status: ParcelStatus
    driver_id: Optional[int] = None
    sent_at: datetime
    picked_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class ParcelListResponse(BaseModel):
    """Schema for paginated parcel list."""
    parcels: List[ParcelResponse]
    total: int
    page: int
    page_size: int


class ParcelTrackingResponse(BaseModel):
    """Parcel with its status history and the assigned driver's last position."""
    parcel: ParcelResponse
    status_history: List[StatusLogResponse]
    driver: Optional[DriverSummary] = None


class ParcelStatsResponse(BaseModel):
    """Per-status parcel counts for a user."""
    sent: dict
    received: dict
