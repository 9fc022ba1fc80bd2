"""
User API Endpoints.

Parcels a user sent or receives, and receiver collection.
"""

from fastapi import APIRouter, Depends, Path
from backend.app.core.dependencies import get_lifecycle_service
from backend.app.core.guards import require_role
from backend.app.domain.parcels.lifecycle_service import ParcelLifecycleService
from backend.app.models.enums import UserRole
from backend.app.schemas.parcel import ParcelResponse, ParcelStatsResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/parcels/sent", response_model=list[ParcelResponse])
async def sent_parcels(
    current_user: dict = Depends(require_role([UserRole.USER, UserRole.ADMIN])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    parcels = await service.list_sent_parcels(current_user["user_id"])
    return [ParcelResponse.model_validate(p) for p in parcels]


@router.get("/parcels/received", response_model=list[ParcelResponse])
async def received_parcels(
    current_user: dict = Depends(require_role([UserRole.USER, UserRole.ADMIN])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    parcels = await service.list_received_parcels(current_user["user_id"])
    return [ParcelResponse.model_validate(p) for p in parcels]


@router.get("/parcels/stats", response_model=ParcelStatsResponse)
async def parcel_stats(
    current_user: dict = Depends(require_role([UserRole.USER, UserRole.ADMIN])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Parcel counts per status, for sent and received parcels.
    """
    stats = await service.get_user_parcel_stats(current_user["user_id"])
    return ParcelStatsResponse(**stats)


@router.patch("/parcels/{parcel_id}/collect", response_model=ParcelResponse)
async def mark_collected(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.USER])),
    service: ParcelLifecycleService = Depends(get_lifecycle_service)
):
    """
    Confirm collection of a delivered parcel (linked receiver only).
    """
    parcel = await service.mark_parcel_collected_by_receiver(parcel_id, current_user["user_id"])
    return ParcelResponse.model_validate(parcel)
