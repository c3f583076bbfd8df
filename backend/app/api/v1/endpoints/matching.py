"""
Matching API Endpoints.

Read-only: proposes package/trip matches and bid amounts.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query

from backend.app.core.dependencies import get_current_user, get_matching_engine
from backend.app.schemas.matching import BidRecommendation, MatchingCriteria, MatchingResult
from backend.app.services.matching_engine import MatchingEngine

router = APIRouter(prefix="/matching", tags=["Matching"])


@router.post("/packages/{package_id}", response_model=MatchingResult)
async def match_package(
    package_id: int = Path(..., description="Package to find trips for"),
    criteria: Optional[MatchingCriteria] = Body(None),
    current_user: dict = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine)
):
    """Rank scheduled trips for a PENDING package."""
    return await engine.find_matches_for_package(package_id, criteria)


@router.post("/trips/{trip_id}", response_model=MatchingResult)
async def match_trip(
    trip_id: int = Path(..., description="Trip to find packages for"),
    criteria: Optional[MatchingCriteria] = Body(None),
    current_user: dict = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine)
):
    """Rank PENDING packages for a SCHEDULED trip."""
    return await engine.find_matches_for_trip(trip_id, criteria)


@router.post("/optimal", response_model=MatchingResult)
async def optimal_matches(
    strategy: str = Query("basic", pattern="^(basic|ml)$"),
    criteria: Optional[MatchingCriteria] = Body(None),
    current_user: dict = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine)
):
    """
    Conflict-free assignment of open packages to scheduled trips.

    ``strategy=ml`` scores pairs with the advanced profile (adds price fit).
    """
    if strategy == "ml":
        return await engine.find_optimal_matches_with_ml(criteria)
    return await engine.find_optimal_matches(criteria)


@router.get("/packages/{package_id}/recommended-bid", response_model=BidRecommendation)
async def recommended_bid(
    package_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine)
):
    return await engine.recommend_bid(package_id)
