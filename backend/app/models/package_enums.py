"""
Package enumerations.
"""

import enum


class PackageStatus(str, enum.Enum):
    """
    Package status enumeration.

    Status flow:
        PENDING → ACCEPTED → IN_TRANSIT → DELIVERED | FAILED
        PENDING can also move to CANCELLED
    """
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PackageSize(str, enum.Enum):
    """Capacity tier shared by packages (declared size) and trips (available capacity)."""
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
    EXTRA_LARGE = "EXTRA_LARGE"


# Total order used for capacity checks
SIZE_RANK = {
    PackageSize.SMALL: 0,
    PackageSize.MEDIUM: 1,
    PackageSize.LARGE: 2,
    PackageSize.EXTRA_LARGE: 3,
}
