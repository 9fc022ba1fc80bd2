"""
Driver enumerations.
"""

import enum


class DriverStatus(str, enum.Enum):
    """
    Driver status enumeration.

    Only AVAILABLE drivers can receive new assignments.
    """
    AVAILABLE = "AVAILABLE"
    ON_DELIVERY = "ON_DELIVERY"
    OUT_SICK = "OUT_SICK"
    ON_LEAVE = "ON_LEAVE"
    SUSPENDED = "SUSPENDED"


class CourierMode(str, enum.Enum):
    """Vehicle used by the driver."""
    BICYCLE = "BICYCLE"
    SKATES = "SKATES"
    MOTORCYCLE = "MOTORCYCLE"
    CAR = "CAR"
