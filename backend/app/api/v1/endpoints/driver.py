"""
Driver API Endpoints.

Location reports, the driver's own parcels and pickup confirmation.
"""

from fastapi import APIRouter, Depends, Path
from backend.app.core.dependencies import get_location_service
from backend.app.core.guards import require_role
from backend.app.domain.drivers.location_service import DriverLocationService
from backend.app.models.enums import UserRole
from backend.app.schemas.parcel import ParcelResponse, LocationUpdateRequest, LocationUpdateResponse

router = APIRouter(prefix="/driver", tags=["Driver"])


@router.patch("/location/{parcel_id}", response_model=LocationUpdateResponse)
async def update_location(
    location_data: LocationUpdateRequest,
    parcel_id: int = Path(..., description="Parcel being carried"),
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    service: DriverLocationService = Depends(get_location_service)
):
    """
    Report the driver's current location.

    The position is always stored. When the parcel is the driver's and still
    on its way, it becomes IN_TRANSIT, or DELIVERED within 0.3 km of the
    destination. Otherwise status is null.
    """
    result = await service.update_location(current_user["user_id"], parcel_id, location_data.location)
    return LocationUpdateResponse(
        status=result.status,
        message=result.message,
        distance_to_destination_km=result.distance_to_destination_km
    )


@router.get("/my-parcels", response_model=list[ParcelResponse])
async def my_parcels(
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    service: DriverLocationService = Depends(get_location_service)
):
    parcels = await service.list_my_parcels(current_user["user_id"])
    return [ParcelResponse.model_validate(p) for p in parcels]


@router.patch("/mark-picked-up/{parcel_id}", response_model=ParcelResponse)
async def mark_picked_up(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    service: DriverLocationService = Depends(get_location_service)
):
    """
    Confirm pickup of an ASSIGNED parcel from the sender.
    """
    parcel = await service.mark_parcel_picked_up(current_user["user_id"], parcel_id)
    return ParcelResponse.model_validate(parcel)
