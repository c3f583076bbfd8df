"""
Bid Pydantic schemas.

Defines request, filter and response models for the bid ledger.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.bid_enums import BidStatus


class BidCreate(BaseModel):
    """Schema for placing a bid. The driver is the authenticated user."""
    package_id: int
    amount: float = Field(..., description="Bid amount in currency units")
    trip_id: Optional[int] = None
    message: Optional[str] = Field(None, max_length=1000)


class BidUpdate(BaseModel):
    """Partial update of a PENDING bid."""
    amount: Optional[float] = None
    message: Optional[str] = Field(None, max_length=1000)


class BidReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BidFilters(BaseModel):
    """Optional filters for listing bids."""
    package_id: Optional[int] = None
    driver_id: Optional[int] = None
    trip_id: Optional[int] = None
    status: Optional[BidStatus] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class BidResponse(BaseModel):
    """Schema for bid response."""
    id: int
    package_id: int
    driver_id: int
    trip_id: Optional[int]
    amount: float
    status: BidStatus
    message: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BidWithCommission(BidResponse):
    """Bid plus the commission split derived from its amount."""
    commission_amount: float
    driver_earnings: float
    platform_fee: float


class BidListResponse(BaseModel):
    """Schema for paginated bid list."""
    bids: List[BidResponse]
    total: int
    limit: int
    offset: int
