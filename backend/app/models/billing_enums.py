"""
Billing enumerations for commission holds and wallet movements.
"""

import enum


class ReservationStatus(str, enum.Enum):
    """Commission reservation status enumeration."""
    PENDING = "PENDING"  # Amount held against wallet.reserved_balance
    CONFIRMED = "CONFIRMED"  # Commission collected
    RELEASED = "RELEASED"  # Hold returned to the driver


class TransactionType(str, enum.Enum):
    """Wallet transaction type enumeration."""
    RECHARGE = "RECHARGE"
    COMMISSION = "COMMISSION"
    REFUND = "REFUND"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
