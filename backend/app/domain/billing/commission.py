"""
Commission calculation (Domain Logic).

Splits a trip or bid amount into platform commission and driver
earnings. Amounts are floored to the cent, never rounded up, so the
platform never takes more than its percentage.
"""

import math
from typing import Optional

from backend.app.core.config import settings
from backend.app.schemas.commission import CommissionCalculation


def floor_cents(value: float) -> float:
    """
    Floor a currency amount to 2 decimal places.

    The product is rounded first so binary noise (0.29 * 100 ==
    28.999999999999996) does not cost a cent.
    """
    return math.floor(round(value * 100, 6)) / 100


def calculate_commission(amount: float, rate: Optional[float] = None) -> CommissionCalculation:
    """
    Calculate commission for an amount.

    Example (rate 0.30):
        33.33 -> commission 9.99, driver earnings 23.33
        100   -> commission 30.0, driver earnings 70.0

    Args:
        amount: Trip or bid amount
        rate: Commission rate, defaults to settings.commission_rate

    Returns:
        CommissionCalculation
    """
    rate = settings.commission_rate if rate is None else rate

    commission = floor_cents(amount * rate)
    driver_earnings = floor_cents(amount - commission)

    return CommissionCalculation(
        trip_amount=amount,
        commission_percentage=round(rate * 100, 2),
        commission_amount=commission,
        driver_earnings=driver_earnings,
        platform_fee=commission,
    )
