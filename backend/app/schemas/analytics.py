"""
Dashboard schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import List
from backend.app.models.parcel_enums import ParcelStatus


class RecentParcel(BaseModel):
    tracking_id: str
    sender_name: str
    receiver_name: str
    status: ParcelStatus
    price: int
    updated_at: datetime


class DashboardMetrics(BaseModel):
    """
    Admin dashboard figures.

    total_earnings sums the price of every parcel that has been processed
    (ASSIGNED through COLLECTED_BY_RECEIVER).
    """
    total_earnings: int
    total_users: int
    active_drivers: int
    parcels_in_transit: int
    parcels_delivered: int
    recent_parcels: List[RecentParcel]
