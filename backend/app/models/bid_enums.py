"""
Bid enumerations.
"""

import enum


class BidStatus(str, enum.Enum):
    """
    Bid status enumeration.

    PENDING is the only non-terminal state.
    """
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
