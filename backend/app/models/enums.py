"""
User roles enumeration.

Defines the role types for the delivery marketplace.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Platform operator (commission settlement, maintenance)
        CUSTOMER: Posts packages and accepts bids
        DRIVER: Publishes trips and bids on packages
    """
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"
