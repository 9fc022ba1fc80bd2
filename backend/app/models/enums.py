"""
User roles enumeration.

Defines the role types for the courier system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Manages drivers, assignments and the dashboard
        DRIVER: Picks up and delivers assigned parcels (stored in the drivers table)
        USER: Sends and receives parcels (default role)
    """
    ADMIN = "ADMIN"
    DRIVER = "DRIVER"
    USER = "USER"
