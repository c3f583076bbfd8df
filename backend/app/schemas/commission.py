"""
Commission Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.billing_enums import ReservationStatus


class CommissionCalculation(BaseModel):
    """Commission split for a bid or trip amount."""
    trip_amount: float
    commission_percentage: float
    commission_amount: float
    driver_earnings: float
    platform_fee: float


class PreAuthorizeRequest(BaseModel):
    trip_id: Optional[int] = None
    commission_amount: float = Field(..., gt=0)


class ReservationResponse(BaseModel):
    id: int
    driver_id: int
    trip_id: Optional[int]
    amount: float
    percentage: float
    status: ReservationStatus
    expires_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class CleanupResponse(BaseModel):
    released: int


class WalletResponse(BaseModel):
    user_id: int
    available_balance: float
    reserved_balance: float

    class Config:
        from_attributes = True
