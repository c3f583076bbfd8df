"""
Matching Pydantic schemas.

Match results are ephemeral: produced per call, never persisted.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.package_enums import PackageSize


class MatchingCriteria(BaseModel):
    """Filters and thresholds for a matching call. Absent fields fall back to settings."""
    max_distance: Optional[float] = Field(None, gt=0, description="Max pickup/delivery distance in km")
    time_window: Optional[float] = Field(None, gt=0, description="Trip departure window in hours")
    min_match_score: Optional[float] = Field(None, ge=0, le=1)
    capacity_required: Optional[PackageSize] = None
    driver_rating: Optional[float] = Field(None, ge=0, le=5, description="Minimum driver rating")


class PackageTripMatch(BaseModel):
    """Scored package/trip pair."""
    package_id: int
    trip_id: int
    driver_id: int
    match_score: float = Field(..., ge=0, le=1)
    distance: float
    time_compatibility: float
    capacity_compatibility: bool
    route_compatibility: float
    estimated_delivery_time: datetime
    priority: Optional[float] = None


class MatchingResult(BaseModel):
    matches: List[PackageTripMatch]
    total_matches: int
    criteria: MatchingCriteria


class BidRecommendation(BaseModel):
    package_id: int
    recommended_amount: float
    reasoning: List[str]
