"""
Geographic helpers.
"""

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


def haversine_km(origin: Coordinates, destination: Coordinates) -> float:
    """Great-circle distance in kilometres between two coordinates."""
    dlat = math.radians(destination.lat - origin.lat)
    dlng = math.radians(destination.lng - origin.lng)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(origin.lat)) * math.cos(math.radians(destination.lat)) * math.sin(dlng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
