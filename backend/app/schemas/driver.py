"""
Driver Pydantic schemas.

Request and response models for driver administration.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.driver_enums import DriverStatus, CourierMode


class DriverCreate(BaseModel):
    """Schema for an admin creating a driver account."""
    name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")
    mode: CourierMode


class DriverUpdate(BaseModel):
    """Partial update of driver details."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    email: Optional[EmailStr] = None
    mode: Optional[CourierMode] = None
    status: Optional[DriverStatus] = None


class DriverStatusUpdate(BaseModel):
    status: DriverStatus


class DriverResponse(BaseModel):
    """Schema for driver response."""
    id: int
    name: str
    email: str
    mode: CourierMode
    status: DriverStatus
    can_receive_assignments: bool
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DriverDetailResponse(DriverResponse):
    parcel_count: int = 0


class DriverListResponse(BaseModel):
    drivers: List[DriverResponse]
    total: int
