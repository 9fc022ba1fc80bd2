"""
Parcel enumerations.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Status flow:
        PENDING → ASSIGNED → PICKED_UP_BY_DRIVER → IN_TRANSIT → DELIVERED → COLLECTED_BY_RECEIVER
        ASSIGNED → PENDING (driver unassigned)
        Early stages → CANCELLED (absorbing)
    """
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    PICKED_UP_BY_DRIVER = "PICKED_UP_BY_DRIVER"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    COLLECTED_BY_RECEIVER = "COLLECTED_BY_RECEIVER"
    CANCELLED = "CANCELLED"


class ParcelType(str, enum.Enum):
    BOXED_PACKAGE = "BOXED_PACKAGE"
    ENVELOPE = "ENVELOPE"
    BAG = "BAG"
    SUITCASE = "SUITCASE"


class TransportMode(str, enum.Enum):
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"
