"""
Admin API Schema Definitions.

Pydantic schemas for admin endpoints.
"""

from pydantic import BaseModel
from typing import List
from backend.app.schemas.auth import UserResponse


class UserListResponse(BaseModel):
    """Schema for list users response."""
    users: List[UserResponse]
    total: int
    page: int
    page_size: int


class AdminActionResponse(BaseModel):
    """Schema for admin action response."""
    success: bool
    message: str
