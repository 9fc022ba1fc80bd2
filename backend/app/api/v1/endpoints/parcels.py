"""
Parcel API Endpoints.

Creation, tracking, status history and the driver-assignment workflow.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query, Path
from backend.app.core.dependencies import get_current_user, get_lifecycle_service
from backend.app.core.guards import require_role, ParcelAccessGuard
from backend.app.domain.parcels.lifecycle_service import ParcelLifecycleService
from backend.app.models.enums import UserRole
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.schemas.parcel import (
    ParcelCreate, ParcelResponse, ParcelListResponse, ParcelStatusUpdate,
    AssignDriverRequest, ParcelTrackingResponse, StatusLogResponse, DriverSummary
)

router = APIRouter(prefix="/parcels", tags=["Parcels"])
parcel_guard = ParcelAccessGuard()


@router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(require_role([UserRole.USER, UserRole.ADMIN])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Register a parcel (User or Admin).

    Both endpoints are geocoded and the price is computed from the route
    distance. The parcel starts PENDING.
    """
    parcel = await service.create_parcel(
        parcel_data,
        caller_user_id=current_user["user_id"],
        caller_role=current_user["role"]
    )
    return ParcelResponse.model_validate(parcel)


@router.get("", response_model=ParcelListResponse)
async def list_parcels(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    status_filter: Optional[ParcelStatus] = Query(None, alias="status"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    List all parcels, newest first (Admin only).
    """
    parcels, total = await service.list_parcels(page, page_size, status_filter)
    return ParcelListResponse(
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/track/{tracking_id}", response_model=ParcelTrackingResponse)
async def track_parcel(
    tracking_id: str = Path(..., description="Tracking ID, e.g. PKG-1001"),
    current_user: dict = Depends(get_current_user),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Track a parcel by tracking ID.

    Returns the parcel, its status history and the assigned driver's last
    reported position.
    """
    parcel = await service.get_parcel_by_tracking_id(tracking_id)
    history = await service.get_status_history(parcel.id)
    driver = await service.get_driver(parcel.driver_id)

    return ParcelTrackingResponse(
        parcel=ParcelResponse.model_validate(parcel),
        status_history=[StatusLogResponse.model_validate(entry) for entry in history],
        driver=DriverSummary.model_validate(driver) if driver else None
    )


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    parcel = await service.get_parcel(parcel_id)
    parcel_guard.enforce(parcel, current_user)
    return ParcelResponse.model_validate(parcel)


@router.get("/{parcel_id}/status-history", response_model=list[StatusLogResponse])
async def get_status_history(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Status history of a parcel, oldest first.
    """
    parcel = await service.get_parcel(parcel_id)
    parcel_guard.enforce(parcel, current_user)
    history = await service.get_status_history(parcel_id)
    return [StatusLogResponse.model_validate(entry) for entry in history]


@router.patch("/{parcel_id}/status", response_model=ParcelResponse)
async def update_parcel_status(
    status_data: ParcelStatusUpdate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Update the status of a parcel (assigned Driver only).
    """
    parcel = await service.update_parcel_status(parcel_id, status_data.status, current_user["user_id"])
    return ParcelResponse.model_validate(parcel)


@router.patch("/{parcel_id}/assign-driver", response_model=ParcelResponse)
async def assign_driver(
    assignment: AssignDriverRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Assign an available driver to a pending parcel (Admin only).
    """
    parcel = await service.assign_driver(parcel_id, assignment.driver_id)
    return ParcelResponse.model_validate(parcel)


@router.patch("/{parcel_id}/unassign-driver", response_model=ParcelResponse)
async def unassign_driver(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Take the driver off a parcel that has not been picked up (Admin only).
    """
    parcel = await service.unassign_driver(parcel_id)
    return ParcelResponse.model_validate(parcel)
