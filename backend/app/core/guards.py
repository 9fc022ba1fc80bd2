"""
Security guards for role-based and participant-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List
from fastapi import Depends
from backend.app.core.exceptions import InsufficientPermissionsError
from backend.app.models.enums import UserRole
from backend.app.models.parcel import Parcel
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/admin/dashboard")
        async def dashboard(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        InsufficientPermissionsError if the caller's role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise InsufficientPermissionsError("Role information missing from token")

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise InsufficientPermissionsError("Invalid role in token")

        if user_role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}",
                details={"role": user_role.value}
            )

        return current_user

    return role_checker


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency for admin-only endpoints."""
    if current_user.get("role") != UserRole.ADMIN.value:
        raise InsufficientPermissionsError("Admin access required")
    return current_user


def can_view_parcel(parcel: Parcel, current_user: dict) -> bool:
    """
    Admins see every parcel, drivers the parcels assigned to them, users the
    parcels they send or receive.
    """
    role = current_user.get("role")
    principal_id = current_user.get("user_id")

    if role == UserRole.ADMIN.value:
        return True

    if role == UserRole.DRIVER.value:
        return parcel.driver_id == principal_id

    return principal_id in (parcel.sender_id, parcel.receiver_id)


class ParcelAccessGuard:
    """
    Class-based guard for parcel visibility.

    Usage:
        parcel_guard = ParcelAccessGuard()

        parcel = await service.get_parcel(parcel_id)
        parcel_guard.enforce(parcel, current_user)
    """

    def enforce(self, parcel: Parcel, current_user: dict):
        if not can_view_parcel(parcel, current_user):
            raise InsufficientPermissionsError(
                "Access denied. You do not have permission to access this parcel.",
                details={"parcel_id": parcel.id}
            )
