"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from backend.app.models.enums import UserRole


class UserRegister(BaseModel):
    """
    Schema for user registration.

    Used by POST /auth/register endpoint. Self-registered accounts are
    always USER accounts.
    """
    name: str = Field(..., min_length=1, max_length=150, description="Full name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")


class UserLogin(BaseModel):
    """
    Schema for login.

    Used by POST /auth/login endpoint for users, admins and drivers.
    """
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int = Field(..., description="User or driver ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(..., description="Role")


class UserResponse(BaseModel):
    """
    Schema for user information response.
    """
    id: int
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True  # Pydantic v2 (was orm_mode in v1)


class MeResponse(BaseModel):
    """Schema for GET /auth/me, shared by accounts and drivers."""
    id: int
    name: str
    email: str
    role: UserRole
    status: Optional[str] = None
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None


class LogoutResponse(BaseModel):
    message: str
