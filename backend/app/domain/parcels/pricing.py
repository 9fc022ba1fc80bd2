"""
Parcel Pricing.

Price in whole currency units from the parcel type, weight, distance and
transport mode. Pure function, no store access.
"""

import math
from backend.app.models.parcel_enums import ParcelType, TransportMode

BASE_FEE = 200
WEIGHT_RATE_PER_KG = 20
DISTANCE_RATE_PER_KM = 10
EXPRESS_MULTIPLIER = 1.5

TYPE_SURCHARGES = {
    ParcelType.ENVELOPE: 50,
    ParcelType.BAG: 100,
    ParcelType.BOXED_PACKAGE: 150,
    ParcelType.SUITCASE: 200,
}


def calculate_parcel_price(
    parcel_type: ParcelType,
    weight: float,
    distance_km: float,
    mode: TransportMode
) -> int:
    """
    Calculate the delivery price of a parcel.

    price = (200 + type surcharge + weight * 20 + distance * 10), times 1.5
    for EXPRESS, rounded to the nearest integer with halves rounded up.

    Args:
        parcel_type: Parcel type (drives the surcharge)
        weight: Weight in kilograms
        distance_km: Route distance in kilometres
        mode: STANDARD or EXPRESS

    Returns:
        Price as an integer
    """
    total = BASE_FEE + TYPE_SURCHARGES[ParcelType(parcel_type)]
    total += weight * WEIGHT_RATE_PER_KG
    total += distance_km * DISTANCE_RATE_PER_KM

    if TransportMode(mode) == TransportMode.EXPRESS:
        total *= EXPRESS_MULTIPLIER

    # round() would round halves to even
    return int(math.floor(total + 0.5))
