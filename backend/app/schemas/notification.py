"""
Notification Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal
from backend.app.models.notification import NotificationKind, NotificationStatus


class ResendNotificationRequest(BaseModel):
    email_type: Literal["assignment", "pickup", "delivery", "location"] = Field(
        ..., description="Which lifecycle email to send again"
    )


class ResendNotificationResponse(BaseModel):
    parcel_id: int
    email_type: str
    sent: bool


class NotificationLogResponse(BaseModel):
    id: int
    parcel_id: Optional[int]
    recipient_email: str
    kind: NotificationKind
    subject: str
    status: NotificationStatus
    error_message: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationLogListResponse(BaseModel):
    logs: List[NotificationLogResponse]
    total: int
