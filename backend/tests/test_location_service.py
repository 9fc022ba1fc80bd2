"""
Driver location tests.

Position reports drive IN_TRANSIT / DELIVERED by distance to the destination.
"""

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import ResourceNotFoundError, BadRequestError
from backend.app.models.driver_enums import DriverStatus
from backend.app.models.notification import NotificationLog, NotificationKind
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.services.status_log import get_status_history
from backend.tests.conftest import PLACES


async def statuses(db, parcel_id):
    return [entry.status for entry in await get_status_history(db, parcel_id)]


@pytest.mark.asyncio
async def test_far_position_moves_parcel_in_transit(location_service, make_parcel, make_driver, db_session):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.PICKED_UP_BY_DRIVER, driver_id=driver.id)

    result = await location_service.update_location(driver.id, parcel.id, "Parklands")

    assert result.status == ParcelStatus.IN_TRANSIT
    assert 0.5 < result.distance_to_destination_km < 1.0
    assert driver.current_lat == PLACES["parklands"].lat
    assert driver.current_lng == PLACES["parklands"].lng
    await db_session.refresh(parcel)
    assert parcel.status == ParcelStatus.IN_TRANSIT
    assert parcel.delivered_at is None
    assert await statuses(db_session, parcel.id) == [
        ParcelStatus.PICKED_UP_BY_DRIVER, ParcelStatus.IN_TRANSIT
    ]


@pytest.mark.asyncio
async def test_near_position_delivers_parcel(location_service, make_parcel, make_driver, db_session, email_transport):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=driver.id)

    result = await location_service.update_location(driver.id, parcel.id, "Westlands Mall")

    assert result.status == ParcelStatus.DELIVERED
    assert result.distance_to_destination_km <= 0.3
    await db_session.refresh(parcel)
    assert parcel.status == ParcelStatus.DELIVERED
    assert parcel.delivered_at is not None
    assert await statuses(db_session, parcel.id) == [ParcelStatus.IN_TRANSIT, ParcelStatus.DELIVERED]
    # Delivery does not free the driver; collection or cancellation does
    await db_session.refresh(driver)
    assert driver.status == DriverStatus.ON_DELIVERY

    kinds = (await db_session.execute(select(NotificationLog.kind))).scalars().all()
    assert NotificationKind.READY_FOR_COLLECTION in kinds
    assert NotificationKind.PARCEL_DELIVERED in kinds
    assert NotificationKind.LOCATION_UPDATE in kinds


@pytest.mark.asyncio
async def test_exactly_at_radius_counts_as_delivered(location_service, make_parcel, make_driver, db_session, mocker):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=driver.id)
    mocker.patch("backend.app.domain.drivers.location_service.haversine_km", return_value=0.3)

    result = await location_service.update_location(driver.id, parcel.id, "Parklands")

    assert result.status == ParcelStatus.DELIVERED
    await db_session.refresh(parcel)
    assert parcel.delivered_at is not None


@pytest.mark.asyncio
async def test_repeated_in_transit_report_writes_no_history(location_service, make_parcel, make_driver, db_session):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=driver.id)

    result = await location_service.update_location(driver.id, parcel.id, "Parklands")

    assert result.status == ParcelStatus.IN_TRANSIT
    assert await statuses(db_session, parcel.id) == [ParcelStatus.IN_TRANSIT]


@pytest.mark.asyncio
async def test_assigned_parcel_can_be_tracked_before_pickup(location_service, make_parcel, make_driver):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.ASSIGNED, driver_id=driver.id)

    result = await location_service.update_location(driver.id, parcel.id, "Thika")

    assert result.status == ParcelStatus.IN_TRANSIT


@pytest.mark.asyncio
async def test_parcel_of_another_driver_is_not_touched(location_service, make_parcel, make_driver, db_session):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    other = await make_driver("other@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=other.id)

    result = await location_service.update_location(driver.id, parcel.id, "Westlands Mall")

    assert result.status is None
    assert result.message == "Parcel not assigned to this driver or not found"
    # The position is still recorded
    assert driver.current_lat == PLACES["westlands mall"].lat
    await db_session.refresh(parcel)
    assert parcel.status == ParcelStatus.IN_TRANSIT


@pytest.mark.asyncio
@pytest.mark.parametrize("inactive", [
    ParcelStatus.PENDING, ParcelStatus.DELIVERED, ParcelStatus.COLLECTED_BY_RECEIVER, ParcelStatus.CANCELLED
])
async def test_inactive_parcel_is_not_touched(location_service, make_parcel, make_driver, db_session, inactive):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=inactive, driver_id=driver.id)

    result = await location_service.update_location(driver.id, parcel.id, "Westlands Mall")

    assert result.status is None
    await db_session.refresh(parcel)
    assert parcel.status == inactive
    assert await statuses(db_session, parcel.id) == [inactive]


@pytest.mark.asyncio
async def test_parcel_without_destination_coordinates(location_service, make_parcel, make_driver):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=driver.id, destination=None)

    result = await location_service.update_location(driver.id, parcel.id, "Westlands Mall")

    assert result.status is None
    assert driver.current_lat == PLACES["westlands mall"].lat


@pytest.mark.asyncio
@pytest.mark.parametrize("location", ["", "   "])
async def test_empty_location_rejected(location_service, make_parcel, make_driver, geocoder, location):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=driver.id)

    with pytest.raises(BadRequestError):
        await location_service.update_location(driver.id, parcel.id, location)

    assert geocoder.calls == []


@pytest.mark.asyncio
async def test_unknown_place_rejected(location_service, make_parcel, make_driver, db_session):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=driver.id)

    with pytest.raises(BadRequestError) as exc:
        await location_service.update_location(driver.id, parcel.id, "Atlantis")

    assert "Atlantis" in exc.value.message
    await db_session.refresh(driver)
    assert driver.current_lat is None


@pytest.mark.asyncio
async def test_unknown_driver(location_service, make_parcel):
    parcel = await make_parcel(status=ParcelStatus.IN_TRANSIT)

    with pytest.raises(ResourceNotFoundError):
        await location_service.update_location(9999, parcel.id, "Westlands")


# Pickup

@pytest.mark.asyncio
async def test_mark_picked_up(location_service, make_parcel, make_driver, db_session, email_transport):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    parcel = await make_parcel(status=ParcelStatus.ASSIGNED, driver_id=driver.id)

    parcel = await location_service.mark_parcel_picked_up(driver.id, parcel.id)

    assert parcel.status == ParcelStatus.PICKED_UP_BY_DRIVER
    assert parcel.picked_at is not None
    assert await statuses(db_session, parcel.id) == [ParcelStatus.ASSIGNED, ParcelStatus.PICKED_UP_BY_DRIVER]
    assert "alice@example.com" in email_transport.recipients()


@pytest.mark.asyncio
async def test_pickup_restores_on_delivery_status(location_service, make_parcel, make_driver, db_session):
    driver = await make_driver("driver@example.com", status=DriverStatus.AVAILABLE)
    parcel = await make_parcel(status=ParcelStatus.ASSIGNED, driver_id=driver.id)

    await location_service.mark_parcel_picked_up(driver.id, parcel.id)

    await db_session.refresh(driver)
    assert driver.status == DriverStatus.ON_DELIVERY
    assert driver.can_receive_assignments is False


@pytest.mark.asyncio
async def test_pickup_rules(location_service, make_parcel, make_driver):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    other = await make_driver("other@example.com", status=DriverStatus.ON_DELIVERY)
    assigned = await make_parcel(status=ParcelStatus.ASSIGNED, driver_id=driver.id)
    in_transit = await make_parcel(status=ParcelStatus.IN_TRANSIT, driver_id=driver.id)

    with pytest.raises(ResourceNotFoundError):
        await location_service.mark_parcel_picked_up(driver.id, 9999)

    with pytest.raises(BadRequestError):
        await location_service.mark_parcel_picked_up(other.id, assigned.id)

    with pytest.raises(BadRequestError):
        await location_service.mark_parcel_picked_up(driver.id, in_transit.id)


@pytest.mark.asyncio
async def test_my_parcels(location_service, make_parcel, make_driver):
    driver = await make_driver("driver@example.com", status=DriverStatus.ON_DELIVERY)
    other = await make_driver("other@example.com", status=DriverStatus.ON_DELIVERY)
    mine = await make_parcel(status=ParcelStatus.ASSIGNED, driver_id=driver.id)
    await make_parcel(status=ParcelStatus.ASSIGNED, driver_id=other.id)

    parcels = await location_service.list_my_parcels(driver.id)

    assert [p.id for p in parcels] == [mine.id]
