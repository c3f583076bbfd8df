"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    SCHEDULED = "SCHEDULED"  # Published by the driver, open for bids
    IN_PROGRESS = "IN_PROGRESS"  # A bid tied to this trip was accepted
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
