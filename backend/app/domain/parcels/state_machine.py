"""
Parcel State Machine.

Status groups and the transition rules shared by the lifecycle and driver
services.

    PENDING → ASSIGNED → PICKED_UP_BY_DRIVER → IN_TRANSIT → DELIVERED → COLLECTED_BY_RECEIVER
    ASSIGNED → PENDING (unassignment)
    PENDING / ASSIGNED / PICKED_UP_BY_DRIVER / IN_TRANSIT → CANCELLED
"""

from backend.app.core.exceptions import BadRequestError, ConflictError
from backend.app.models.parcel_enums import ParcelStatus

# Parcels that keep their driver busy
ACTIVE_STATUSES = frozenset({
    ParcelStatus.PICKED_UP_BY_DRIVER,
    ParcelStatus.IN_TRANSIT,
    ParcelStatus.DELIVERED,
})

IN_FLIGHT_STATUSES = frozenset({
    ParcelStatus.PICKED_UP_BY_DRIVER,
    ParcelStatus.IN_TRANSIT,
})

COMPLETED_STATUSES = frozenset({
    ParcelStatus.DELIVERED,
    ParcelStatus.COLLECTED_BY_RECEIVER,
})

# Parcels that count towards earnings
PROCESSED_STATUSES = frozenset({
    ParcelStatus.ASSIGNED,
    ParcelStatus.PICKED_UP_BY_DRIVER,
    ParcelStatus.IN_TRANSIT,
    ParcelStatus.DELIVERED,
    ParcelStatus.COLLECTED_BY_RECEIVER,
})

# A driver can no longer be taken off these
UNASSIGN_LOCKED_STATUSES = frozenset({
    ParcelStatus.PICKED_UP_BY_DRIVER,
    ParcelStatus.IN_TRANSIT,
    ParcelStatus.DELIVERED,
    ParcelStatus.COLLECTED_BY_RECEIVER,
})

# Location reports move these parcels along
LOCATION_TRACKABLE_STATUSES = frozenset({
    ParcelStatus.ASSIGNED,
    ParcelStatus.PICKED_UP_BY_DRIVER,
    ParcelStatus.IN_TRANSIT,
})

# driver_id is set whenever a parcel is in one of these
DRIVER_REQUIRED_STATUSES = frozenset({
    ParcelStatus.ASSIGNED,
    ParcelStatus.PICKED_UP_BY_DRIVER,
    ParcelStatus.IN_TRANSIT,
    ParcelStatus.DELIVERED,
})

TERMINAL_STATUSES = frozenset({
    ParcelStatus.CANCELLED,
    ParcelStatus.COLLECTED_BY_RECEIVER,
})

# Transitions that can release the parcel's driver
COMPLETING_STATUSES = frozenset({
    ParcelStatus.COLLECTED_BY_RECEIVER,
    ParcelStatus.CANCELLED,
})


def is_completing(status: ParcelStatus) -> bool:
    return status in COMPLETING_STATUSES


def ensure_not_terminal(current: ParcelStatus) -> None:
    """Raise ConflictError if the parcel can no longer change status."""
    if current in TERMINAL_STATUSES:
        raise ConflictError(
            f"Parcel is {current.value} and can no longer change status",
            details={"current_status": current.value}
        )


def ensure_general_transition_allowed(current: ParcelStatus, new_status: ParcelStatus) -> None:
    """
    Rules for the admin status update.

    Terminal parcels are locked (Conflict). A delivered parcel may only be
    collected by its receiver (BadRequest).
    """
    ensure_not_terminal(current)

    if current == ParcelStatus.DELIVERED and new_status != ParcelStatus.COLLECTED_BY_RECEIVER:
        raise BadRequestError(
            "Delivered parcels can only be marked as collected by the receiver",
            details={"current_status": current.value, "requested_status": new_status.value}
        )


def ensure_driver_present(new_status: ParcelStatus, driver_id) -> None:
    """A parcel cannot be in a driver-handled status without a driver."""
    if new_status in DRIVER_REQUIRED_STATUSES and driver_id is None:
        raise BadRequestError(
            f"Parcel needs an assigned driver to move to {new_status.value}",
            details={"requested_status": new_status.value}
        )
