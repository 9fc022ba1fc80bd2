"""
Admin API Endpoints.

Dashboard, admin status overrides, account listing, driver management and
notification tooling.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.models.notification import NotificationStatus
from backend.app.schemas.admin import UserListResponse, AdminActionResponse
from backend.app.schemas.auth import UserResponse
from backend.app.schemas.analytics import DashboardMetrics
from backend.app.schemas.driver import (
    DriverCreate, DriverUpdate, DriverStatusUpdate, DriverResponse, DriverDetailResponse, DriverListResponse
)
from backend.app.schemas.notification import (
    ResendNotificationRequest, ResendNotificationResponse, NotificationLogResponse, NotificationLogListResponse
)
from backend.app.schemas.parcel import ParcelResponse, ParcelStatusUpdate
from backend.app.core.guards import require_admin
from backend.app.core.dependencies import get_lifecycle_service, get_driver_service
from backend.app.domain.parcels.lifecycle_service import ParcelLifecycleService
from backend.app.domain.drivers.driver_service import DriverService
from backend.app.services.notification_service import get_notification_logs

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/dashboard", response_model=DashboardMetrics)
async def dashboard(
    admin: dict = Depends(require_admin),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Earnings, user and driver counts, parcels in flight and delivered, and
    the five most recently updated parcels.
    """
    return DashboardMetrics(**await service.get_dashboard_metrics())


@router.patch("/parcels/{parcel_id}/status", response_model=ParcelResponse)
async def update_parcel_status(
    status_data: ParcelStatusUpdate,
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: dict = Depends(require_admin),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Override a parcel's status (admin-only).

    Delivered parcels can only become COLLECTED_BY_RECEIVER; cancelled and
    collected parcels are locked.
    """
    parcel = await service.update_parcel_status_general(parcel_id, status_data.status)
    return ParcelResponse.model_validate(parcel)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all user accounts (admin-only).
    """
    total_result = await db.execute(select(func.count(User.id)))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(User).order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(page_size)
    )
    users = result.scalars().all()

    return UserListResponse(
        users=[UserResponse.model_validate(user) for user in users],
        total=total,
        page=page,
        page_size=page_size
    )


# Drivers

@router.post("/drivers", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def create_driver(
    driver_data: DriverCreate,
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    driver = await service.create_driver(driver_data)
    return DriverResponse.model_validate(driver)


@router.get("/drivers", response_model=DriverListResponse)
async def list_drivers(
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    """
    List every driver, archived ones included.
    """
    drivers = await service.list_drivers()
    return DriverListResponse(
        drivers=[DriverResponse.model_validate(d) for d in drivers],
        total=len(drivers)
    )


@router.get("/drivers/available", response_model=DriverListResponse)
async def list_available_drivers(
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    drivers = await service.list_available_drivers()
    return DriverListResponse(
        drivers=[DriverResponse.model_validate(d) for d in drivers],
        total=len(drivers)
    )


@router.get("/drivers/{driver_id}", response_model=DriverDetailResponse)
async def get_driver(
    driver_id: int = Path(..., description="Driver ID"),
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    driver = await service.get_driver(driver_id)
    parcel_count = await service.count_parcels(driver_id)
    return DriverDetailResponse(
        **DriverResponse.model_validate(driver).model_dump(),
        parcel_count=parcel_count
    )


@router.patch("/drivers/{driver_id}", response_model=DriverResponse)
async def update_driver(
    driver_data: DriverUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    driver = await service.update_driver(driver_id, driver_data)
    return DriverResponse.model_validate(driver)


@router.patch("/drivers/{driver_id}/status", response_model=DriverResponse)
async def update_driver_status(
    status_data: DriverStatusUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    """
    Set a driver's status. Only AVAILABLE drivers receive assignments.
    """
    driver = await service.update_driver_status(driver_id, status_data.status)
    return DriverResponse.model_validate(driver)


@router.delete("/drivers/{driver_id}", response_model=DriverResponse)
async def archive_driver(
    driver_id: int = Path(..., description="Driver ID"),
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    """
    Archive (soft delete) a driver and revoke their tokens.
    """
    driver = await service.soft_delete_driver(driver_id)
    return DriverResponse.model_validate(driver)


@router.patch("/drivers/{driver_id}/restore", response_model=DriverResponse)
async def restore_driver(
    driver_id: int = Path(..., description="Driver ID"),
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    driver = await service.restore_driver(driver_id)
    return DriverResponse.model_validate(driver)


@router.delete("/drivers/{driver_id}/permanent", response_model=AdminActionResponse)
async def delete_driver_permanently(
    driver_id: int = Path(..., description="Driver ID"),
    admin: dict = Depends(require_admin),
    service: DriverService = Depends(get_driver_service)
):
    """
    Delete a driver row. Refused while parcels reference the driver.
    """
    await service.permanently_delete_driver(driver_id)
    return AdminActionResponse(success=True, message=f"Driver {driver_id} permanently deleted")


# Notifications

@router.post("/notifications/parcels/{parcel_id}/resend", response_model=ResendNotificationResponse)
async def resend_notification(
    request: ResendNotificationRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: dict = Depends(require_admin),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Send one of the parcel lifecycle emails again.

    sent is False when the email could not be delivered; the attempt is
    recorded in the notification log either way.
    """
    sent = await service.resend_notification(parcel_id, request.email_type)
    return ResendNotificationResponse(parcel_id=parcel_id, email_type=request.email_type, sent=sent)


@router.get("/notifications/logs", response_model=NotificationLogListResponse)
async def notification_logs(
    parcel_id: Optional[int] = Query(None, description="Filter by parcel"),
    status_filter: Optional[NotificationStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    logs = await get_notification_logs(db, parcel_id=parcel_id, status=status_filter, limit=limit)
    return NotificationLogListResponse(
        logs=[NotificationLogResponse.model_validate(entry) for entry in logs],
        total=len(logs)
    )
